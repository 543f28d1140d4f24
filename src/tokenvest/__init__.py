"""Token grant vesting, lockup and withdrawal balance accounting."""

__version__ = "1.0.0"
