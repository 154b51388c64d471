"""Runtime configuration"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class LayerZConfig:
    """
    Z placement of spawned layers.

    Leaf layers are numbered in depth-first order; leaf n gets
    z = offset + n * multiplier. Groups stay at z = 0 so that children
    are not pushed twice.
    """
    offset: float = 0.0
    multiplier: float = 1.0

    def z_for(self, counter: int) -> float:
        return self.offset + counter * self.multiplier


@dataclass
class TiledConfig:
    """
    Settings for TiledRuntime.

    asset_root:        directory every asset path is relative to
    export_types_path: where to write the property-type descriptor on start
                       (None disables the export)
    project_path:      asset path of a .tiled-project to load on start
    layer_z:           z placement of spawned layers
    load_images:       decode tileset and image-layer images with Pillow
    """
    asset_root: Path = Path("assets")
    export_types_path: Optional[Path] = None
    project_path: Optional[str] = None
    layer_z: LayerZConfig = field(default_factory=LayerZConfig)
    load_images: bool = True

    def __post_init__(self):
        self.asset_root = Path(self.asset_root)
        if self.export_types_path is not None:
            self.export_types_path = Path(self.export_types_path)
