"""Auditory front-end models."""

from torch_afe.models.gammatone_ratemap import GammatoneRatemap

__all__ = ["GammatoneRatemap"]
