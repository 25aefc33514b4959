"""fuse_context: fuse a source tree into token-bounded context files."""

__version__ = "0.4.0"
