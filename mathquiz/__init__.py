"""Discord math quiz bot with a timed, single-player quiz session engine."""

__version__ = "1.0.0"
