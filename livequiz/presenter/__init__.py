"""Presenter status broadcasting."""

from .broadcast import PresenterBroadcastChannel, PRESENTER_STATUS_TOPIC

__all__ = ["PresenterBroadcastChannel", "PRESENTER_STATUS_TOPIC"]
