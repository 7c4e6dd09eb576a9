"""wasmhttp - host runtime giving WebAssembly guests an HTTP server."""

__version__ = "0.1.0"
