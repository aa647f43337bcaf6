"""x402 autopay: standing payment rules monitored and executed on a schedule."""

__version__ = "0.1.0"
