"""core/ -- Process-wide kernel: configuration. Imports nothing from auth/ or notify/."""
