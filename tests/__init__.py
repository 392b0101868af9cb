"""
HLMM Test Suite

Tests for the HLMM market maker covering:
- Configuration validation and loading
- Utility functions and decay weighting
- Signal computation, quoting and the risk gate
- Event routing and the core pipeline
- Hyperliquid feed decoding (with mocked transports)
- Logging and debugging functionality
"""
