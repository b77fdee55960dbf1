"""
trafficlens CLI - Command-line interface for the telemetry service.

Usage:
    trafficlens-cli show --sort total --order desc
    trafficlens-cli summary
    trafficlens-cli remove 10.0.0.5
    trafficlens-cli details on
"""

__version__ = "0.1.0"
