"""notify/ -- Outbound notification collaborators for passgate.

Layer rule: notify/ may import auth.models and auth.exceptions, nothing else
from auth/. auth.service depends on notify.sender; never the reverse.
"""
