"""MeetingPoint — cheapest common destination for travelers departing from different cities."""

__version__ = "0.1.0"
