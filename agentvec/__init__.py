"""Building blocks for an embedded vector store: storage, metadata and quantization."""

__version__ = "0.2.0"