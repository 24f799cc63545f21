"""PeerLearn — challenge, teach-back and peer feedback workflow service."""

__version__ = "0.1.0"
