"""Allow ``python -m wasmhttp``."""

from wasmhttp.cli.serve import main

main()
