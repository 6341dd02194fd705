"""Asset resolution and authenticated Koi backend access for the Monkfish bot."""

__version__ = "0.3.0"
