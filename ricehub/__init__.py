"""
RiceHub backend.

A FastAPI service for sharing dotfile bundles ("rices"): a ranked,
keyset-paginated feed plus the rice, preview, dotfiles and star endpoints,
backed by a SQLAlchemy store and S3-compatible blob storage.
"""
