"""specpilot: resumable, retry-aware execution of AI-agent driven spec workflows."""

__version__ = "0.1.0"
