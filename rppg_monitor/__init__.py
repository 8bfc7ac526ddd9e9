"""
rPPG Monitor — contactless heart-rate estimation from a face video.

A forehead region is located on each frame, its mean colour is reduced to a
single photoplethysmography (PPG) sample, and the rolling signal is analysed
with a peak-based periodicity estimator to produce a BPM reading.
"""

__version__ = "0.1.0"
__author__ = "rppg_monitor"
