"""HTTP(S) uptime monitor: prober, rolling history, metrics and dashboard view."""

__version__ = "0.1.0"
