from importlib import import_module

modules = [
    'auth',
    'parks',
    'dogs',
    'admin_approvals',
    'maintenance',
    'notifications',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
