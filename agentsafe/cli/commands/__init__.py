"""
CLI subcommands. Each module exposes ``register(subparsers)``.
"""
