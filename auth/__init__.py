"""auth/ -- Credential lifecycle engine for passgate.

Leaf-first: passwords, validation, tokens, storage interfaces, service.
memory.py and store.py are reference storage adapters; dependencies.py is
the optional FastAPI integration.

Layer rule: auth/ imports core.config and notify.sender only from the
service and HTTP layers. The policy and token modules import nothing from
the rest of the project.
"""
