"""
Tile animations

=============================================================================
ANIMATION TIMING
=============================================================================

A Tiled animation is a list of frames, each naming a tile of the SAME
tileset and how long it stays on screen:

    <animation>
        <frame tileid="7" duration="100"/>
        <frame tileid="8" duration="150"/>
    </animation>

Playback is time-based: the state accumulates elapsed milliseconds and
steps over as many frames as that time covers, so the animation runs at
the same speed whatever the frame rate. Animations loop forever.

    time ─────────────────────────────────────────────▶
          |  frame 7 (100ms) |  frame 8 (150ms)  | frame 7 ...

=============================================================================
"""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class AnimationFrame:
    tile_id: int        # Local tile id inside the owning tileset
    duration_ms: int    # Time the frame stays visible


@dataclass(frozen=True)
class TileAnimation:
    frames: List[AnimationFrame] = field(default_factory=list)

    @property
    def total_duration_ms(self) -> int:
        return sum(frame.duration_ms for frame in self.frames)

    def frame_at(self, elapsed_ms: float) -> AnimationFrame:
        """Frame visible `elapsed_ms` after the animation started (looping)."""
        total = self.total_duration_ms
        if total <= 0:
            return self.frames[0]
        t = elapsed_ms % total
        for frame in self.frames:
            if t < frame.duration_ms:
                return frame
            t -= frame.duration_ms
        return self.frames[-1]


class AnimationState:
    """
    Playback position of one animated tile.

    Usage:
        state = AnimationState(tileset.tile_animation(7))
        state.update(16.7)             # every render frame, in ms
        tile_id = state.current_tile_id
    """

    def __init__(self, animation: TileAnimation):
        if not animation.frames:
            raise ValueError("animation has no frames")
        self.animation = animation
        self.frame_index = 0
        self.timer_ms = 0.0

    @property
    def current_frame(self) -> AnimationFrame:
        return self.animation.frames[self.frame_index]

    @property
    def current_tile_id(self) -> int:
        return self.current_frame.tile_id

    def update(self, elapsed_ms: float):
        """Advance by `elapsed_ms` milliseconds."""
        if self.animation.total_duration_ms <= 0:
            return
        self.timer_ms += elapsed_ms
        # Skip whole loops first so a long pause does not iterate per frame
        self.timer_ms %= self.animation.total_duration_ms
        while self.timer_ms >= self.current_frame.duration_ms:
            self.timer_ms -= self.current_frame.duration_ms
            self.frame_index = (self.frame_index + 1) % len(self.animation.frames)

    def reset(self):
        self.frame_index = 0
        self.timer_ms = 0.0
