"""HTTP server wiring for libapp applications."""
