"""
Queue module for spot-radio.

Usage:
    from spot_radio.queue import RadioQueue, LikedSongsQueue
"""

from spot_radio.queue.radio import LikedSongsQueue, RadioQueue

__all__ = ["RadioQueue", "LikedSongsQueue"]
