"""Halaqat center management service."""

__all__ = ['app']


def __getattr__(name: str):
    # The ASGI app is built lazily so services and tests can import the package without side effects.
    if name == 'app':
        from halaqat.main import app

        return app
    raise AttributeError(f'module {__name__!r} has no attribute {name!r}')
