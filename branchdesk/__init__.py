"""branchdesk - heuristic CSV intake and content-addressed uploads."""

__version__ = "0.1.0"
