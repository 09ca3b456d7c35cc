"""Map query visualizer: plain-English map queries turned into map draw plans."""

__version__ = "0.1.0"
