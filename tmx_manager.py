#!/usr/bin/env python3

"""
Module for reading TMX, TSX and TX files (Tiled Map Format)
Supports TMX version 1.11.0 and earlier versions

=============================================================================
WHAT IS TMX?
=============================================================================

TMX (Tiled Map XML) is the native format of the Tiled Map Editor, the most
popular tile map editor for 2D games. Three XML artifacts are involved:

- .tmx  Maps: dimensions, tilesets, layers, objects, properties
- .tsx  External tilesets shared between maps
- .tx   Object templates (a single reusable object definition)

This module is the RAW layer: it turns XML bytes into plain dataclasses
that mirror the file one-to-one. It never touches the filesystem and never
follows references to other files. Resolving `source="..."` attributes,
caching shared tilesets and building the runtime representation is the job
of the `tmx_runtime` package.

=============================================================================
TMX FILE STRUCTURE
=============================================================================

A TMX file is XML with this basic structure:

    <map version="1.10" orientation="orthogonal" width="100" height="100"
         tilewidth="32" tileheight="32" infinite="0">

        <tileset firstgid="1" source="../tilesets/terrain.tsx"/>

        <layer id="1" name="Ground" width="100" height="100">
            <data encoding="csv">
                1,2,3,4,5,...
            </data>
        </layer>

        <objectgroup id="2" name="Collisions">
            <object id="1" x="100" y="200" width="32" height="32"/>
            <object id="2" x="10" y="10">
                <polygon points="0,0 32,0 16,24"/>
            </object>
            <object id="3" template="../templates/chest.tx" x="64" y="64"/>
        </objectgroup>

        <imagelayer id="3" name="Sky">
            <image source="../images/sky.png"/>
        </imagelayer>
    </map>

=============================================================================
GLOBAL TILE IDs (GIDs)
=============================================================================

Tiles are referenced by Global IDs (GIDs) across all tilesets:

    Tileset A (firstgid=1):   tiles 1-100
    Tileset B (firstgid=101): tiles 101-200

    GID 0 = empty tile (no graphic)
    GID 50 = tile 49 from tileset A
    GID 150 = tile 49 from tileset B (150 - 101 = 49)

The three highest bits of a GID are flip flags, NOT part of the id:

    bit 31 (0x80000000) = flipped horizontally
    bit 30 (0x40000000) = flipped vertically
    bit 29 (0x20000000) = flipped diagonally

This module stores GIDs exactly as found in the file (flags included).

=============================================================================
SUPPORTED FEATURES
=============================================================================

Layer Types:
- TileLayer:  Grid of tile references (finite arrays or infinite chunks)
- ObjectGroup: Vector objects (rectangle, ellipse, point, polygon,
               polyline, text, tile objects, template instances)
- ImageLayer: A single image
- LayerGroup: Folder containing other layers

Data Encodings:
- XML (deprecated, verbose)
- CSV (human-readable, good for debugging)
- Base64 (compact, binary)

Compressions (with Base64):
- None (uncompressed)
- zlib (standard compression)
- gzip (gzip format)
- zstd (modern, high-ratio compression)

Property Types:
- string, int, float, bool, color, file, object
- class (custom class values with nested member properties)

=============================================================================
"""

import xml.etree.ElementTree as ET
from typing import Optional, List, Dict, Any, Union, Tuple, Set
from dataclasses import dataclass, field
import array
import base64
import gzip
import sys
import zlib

import zstandard


# =============================================================================
# ERRORS
# =============================================================================

class TmxFormatError(ValueError):
    """
    Raised when a Tiled file is structurally invalid.

    Covers malformed XML, unknown encodings or compressions, corrupt
    compressed payloads and tile data whose size does not match the
    declared layer dimensions.
    """

    def __init__(self, reason: str, path: str = ""):
        self.reason = reason
        self.path = path
        super().__init__(f"{path}: {reason}" if path else reason)


def _parse_root(data: Union[bytes, str], path: str, expected_tag: str) -> ET.Element:
    """Parse XML bytes and check the root tag."""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise TmxFormatError(f"malformed XML ({e})", path) from e

    if root.tag != expected_tag:
        raise TmxFormatError(
            f"expected <{expected_tag}> root element, found <{root.tag}>", path
        )
    return root


def _bool_attr(elem: ET.Element, name: str, default: str = '1') -> bool:
    # Tiled writes booleans as "0"/"1"; absent means the default
    return elem.get(name, default) == '1'


# =============================================================================
# COLOR CLASS
# =============================================================================

@dataclass(frozen=True)
class Color:
    """
    RGBA color with 8-bit channels.

    Tiled writes colors as hex strings in two forms:

        #AARRGGBB   (alpha first - this is NOT the CSS order!)
        #RRGGBB     (alpha implied 255)

    The leading '#' is optional in older files.
    """
    r: int
    g: int
    b: int
    a: int = 255

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional['Color']:
        """
        Parse a Tiled color string.

        Returns None for empty values (Tiled uses "" for "no color").
        Raises TmxFormatError for anything that is not 6 or 8 hex digits.
        """
        if text is None:
            return None
        text = text.strip()
        if not text:
            return None
        digits = text[1:] if text.startswith('#') else text
        try:
            value = int(digits, 16)
        except ValueError:
            raise TmxFormatError(f"invalid color {text!r}")

        if len(digits) == 8:
            return cls(
                r=(value >> 16) & 0xFF,
                g=(value >> 8) & 0xFF,
                b=value & 0xFF,
                a=(value >> 24) & 0xFF,
            )
        if len(digits) == 6:
            return cls(r=(value >> 16) & 0xFF, g=(value >> 8) & 0xFF, b=value & 0xFF)
        raise TmxFormatError(f"invalid color {text!r}")

    def to_hex(self) -> str:
        """Format back to Tiled's #aarrggbb form."""
        return f"#{self.a:02x}{self.r:02x}{self.g:02x}{self.b:02x}"


# =============================================================================
# PROPERTY CLASS
# =============================================================================

@dataclass
class Property:
    """
    Custom property attached to any TMX element.

    Tiled allows adding custom properties to maps, layers, tiles, objects, etc.
    Properties are key-value pairs with typed values.

    ==========================================================================
    SUPPORTED TYPES
    ==========================================================================

    - string: Text value (default)
    - int: Integer number
    - float: Decimal number
    - bool: True/False
    - color: Color in #AARRGGBB format        → Color (or None when unset)
    - file: File path reference               → str, relative to the file
    - object: Reference to another object     → int (object id)
    - class: Custom class value               → Dict[str, Property]

    ==========================================================================
    CUSTOM TYPES (propertytype)
    ==========================================================================

    Properties typed with a project-defined class or enum carry the type
    name in the `propertytype` attribute:

        <property name="dir" type="string" propertytype="game::Direction"
                  value="East"/>

        <property name="physics" type="class" propertytype="avian::PhysicsSettings">
            <properties>
                <property name="friction" type="float" value="0.2"/>
            </properties>
        </property>

    Class values nest: a member of a class property can itself be a class.
    Members left at their default in the editor are NOT written to the
    file, so a class value may contain fewer members than its definition.

    ==========================================================================
    """
    name: str                    # Property name (key)
    type: str = "string"         # Value type
    value: Any = None            # The actual value
    property_type: str = ""      # Custom class/enum name (may be empty)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Property':
        """
        Parse property from XML element.

        XML format:
            <property name="solid" type="bool" value="true"/>
            <property name="health" type="int" value="100"/>
            <property name="description" value="A wooden door"/>  (type defaults to string)
            <property name="text">multi-line
            value</property>                                      (value as element text)
        """
        prop_type = elem.get('type', 'string')  # Default to string if not specified
        property_type = elem.get('propertytype', '')
        value = elem.get('value')
        if value is None:
            # Multi-line strings are stored as element text
            value = elem.text or ''

        # -----------------------------------------------------------------
        # TYPE CONVERSION
        # -----------------------------------------------------------------
        # Convert string value to appropriate Python type
        # This makes properties usable directly in game code
        try:
            if prop_type == 'int':
                value = int(value) if value else 0
            elif prop_type == 'float':
                value = float(value) if value else 0.0
            elif prop_type == 'bool':
                # XML stores as "true"/"false" strings
                value = value.lower() == 'true'
            elif prop_type == 'color':
                value = Color.parse(value)
            elif prop_type == 'object':
                value = int(value) if value else 0
            elif prop_type == 'class':
                value = parse_properties(elem)
        except ValueError as e:
            raise TmxFormatError(
                f"property {elem.get('name')!r}: cannot read {value!r} as {prop_type} ({e})"
            ) from e

        return cls(
            name=elem.get('name', ''),
            type=prop_type,
            value=value,
            property_type=property_type,
        )


def parse_properties(elem: ET.Element) -> Dict[str, Property]:
    """
    Parse the <properties> child of an element into a dict keyed by name.

    Returns an empty dict when the element carries no properties.
    """
    properties: Dict[str, Property] = {}
    props_elem = elem.find('properties')
    if props_elem is not None:
        for prop_elem in props_elem.findall('property'):
            prop = Property.from_xml(prop_elem)
            # Store by name for O(1) lookup
            properties[prop.name] = prop
    return properties


# =============================================================================
# IMAGE CLASS
# =============================================================================

@dataclass
class Image:
    """
    Image reference used in tilesets and image layers.

    ==========================================================================
    ATTRIBUTES
    ==========================================================================

    source: Path to image file (relative to the TMX/TSX file that names it)
    width:  Image width in pixels (optional, for validation)
    height: Image height in pixels (optional)
    trans:  Transparent color in hex (e.g., "ff00ff" for magenta)
            Pixels of this color become transparent

    ==========================================================================
    """
    source: str                          # Path to image file
    width: Optional[int] = None          # Image width (pixels)
    height: Optional[int] = None         # Image height (pixels)
    trans: Optional[str] = None          # Transparent color (RRGGBB)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Image':
        """Parse image from XML element."""
        return cls(
            source=elem.get('source', ''),
            # Width/height are optional - use None if not present
            width=int(elem.get('width')) if elem.get('width') else None,
            height=int(elem.get('height')) if elem.get('height') else None,
            trans=elem.get('trans')
        )


# =============================================================================
# ANIMATION FRAME CLASS
# =============================================================================

@dataclass
class Frame:
    """One step of a tile animation: show `tileid` for `duration` ms."""
    tileid: int
    duration: int

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Frame':
        return cls(tileid=int(elem.get('tileid', 0)), duration=int(elem.get('duration', 0)))


# =============================================================================
# TILE CLASS
# =============================================================================

@dataclass
class Tile:
    """
    Individual tile within a tileset.

    Represents metadata for a specific tile. Not all tiles need Tile objects -
    only tiles with custom properties, animations, collision shapes or (for
    image collections) individual images.

    ==========================================================================
    TILE IDs
    ==========================================================================

    The 'id' is LOCAL to the tileset (0-based index).
    To get the Global ID (GID): gid = firstgid + tile.id

    ==========================================================================
    COLLISION SHAPES
    ==========================================================================

    The Tiled collision editor stores shapes as an <objectgroup> inside the
    tile. Object coordinates are relative to the tile's TOP-LEFT corner:

        <tile id="5">
            <objectgroup draworder="index">
                <object id="1" x="0" y="0" width="16" height="16"/>
            </objectgroup>
        </tile>

    ==========================================================================
    ANIMATIONS
    ==========================================================================

        <tile id="7">
            <animation>
                <frame tileid="7" duration="100"/>
                <frame tileid="8" duration="100"/>
            </animation>
        </tile>

    ==========================================================================
    """
    id: int                                          # Local tile ID (within tileset)
    type: str = ""                                   # Tile type/class
    probability: float = 1.0                         # Terrain/random-fill weight
    properties: Dict[str, Property] = field(default_factory=dict)  # Custom properties
    image: Optional[Image] = None                    # Image (for collection tilesets)
    objectgroup: Optional['ObjectGroup'] = None      # Collision shapes
    animation: List[Frame] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Tile':
        """Parse tile from XML element."""
        tile = cls(id=int(elem.get('id', 0)))
        # Tiled 1.9 renamed 'type' to 'class'
        tile.type = elem.get('class', elem.get('type', ''))
        tile.probability = float(elem.get('probability', 1.0))
        tile.properties = parse_properties(elem)

        # -----------------------------------------------------------------
        # PARSE IMAGE (for image collection tilesets)
        # -----------------------------------------------------------------
        img_elem = elem.find('image')
        if img_elem is not None:
            tile.image = Image.from_xml(img_elem)

        # -----------------------------------------------------------------
        # PARSE COLLISION SHAPES
        # -----------------------------------------------------------------
        group_elem = elem.find('objectgroup')
        if group_elem is not None:
            tile.objectgroup = ObjectGroup.from_xml(group_elem)

        # -----------------------------------------------------------------
        # PARSE ANIMATION
        # -----------------------------------------------------------------
        anim_elem = elem.find('animation')
        if anim_elem is not None:
            tile.animation = [Frame.from_xml(f) for f in anim_elem.findall('frame')]

        return tile


# =============================================================================
# TILESET CLASS
# =============================================================================

@dataclass
class Tileset:
    """
    Tileset collection - a set of tile graphics.

    ==========================================================================
    TILESET TYPES
    ==========================================================================

    1. SPRITESHEET TILESET (most common):
       One large image divided into a grid of tiles.

       +---+---+---+---+
       | 0 | 1 | 2 | 3 |
       +---+---+---+---+
       | 4 | 5 | 6 | 7 |
       +---+---+---+---+

       Attributes used: image, tilewidth, tileheight, columns, spacing, margin

    2. IMAGE COLLECTION TILESET:
       Each tile is a separate image file.

       tiles/
       ├── tree.png     (tile 0)
       ├── house.png    (tile 1)
       └── rock.png     (tile 2)

       Each tile has its own Image reference, columns is 0.

    ==========================================================================
    EMBEDDED vs EXTERNAL TILESETS
    ==========================================================================

    EMBEDDED: Tileset data is inside the TMX file
        <tileset firstgid="1" name="terrain" tilewidth="32" ...>
            <image source="terrain.png"/>
        </tileset>

    EXTERNAL (TSX): Tileset data is in separate .tsx file
        <tileset firstgid="1" source="terrain.tsx"/>

        Here only `firstgid` and `source` are filled in; the caller loads
        the TSX with Tileset.parse() and pairs it with this firstgid.

    ==========================================================================
    """
    firstgid: int                                    # First Global ID (0 inside a TSX)
    name: str                                        # Tileset name
    tilewidth: int                                   # Tile width in pixels
    tileheight: int                                  # Tile height in pixels
    tilecount: int = 0                               # Total number of tiles
    columns: int = 0                                 # Tiles per row (for spritesheet)
    spacing: int = 0                                 # Pixels between tiles
    margin: int = 0                                  # Pixels around edge
    tileoffset: Tuple[int, int] = (0, 0)             # Drawing offset in pixels
    image: Optional[Image] = None                    # Spritesheet image
    tiles: Dict[int, Tile] = field(default_factory=dict)  # Tile metadata
    properties: Dict[str, Property] = field(default_factory=dict)
    source: Optional[str] = None                     # TSX file path (if external)

    @classmethod
    def from_xml(cls, elem: ET.Element, firstgid: int) -> 'Tileset':
        """
        Parse tileset from XML element.

        Parameters:
        -----------
        elem : ET.Element
            The <tileset> XML element
        firstgid : int
            First Global ID (from parent TMX, not the TSX itself)
        """
        tileset = cls(
            firstgid=firstgid,
            name=elem.get('name', ''),
            tilewidth=int(elem.get('tilewidth', 0)),
            tileheight=int(elem.get('tileheight', 0)),
            tilecount=int(elem.get('tilecount', 0)),
            columns=int(elem.get('columns', 0)),
            spacing=int(elem.get('spacing', 0)),
            margin=int(elem.get('margin', 0)),
            source=elem.get('source')
        )

        offset_elem = elem.find('tileoffset')
        if offset_elem is not None:
            tileset.tileoffset = (int(offset_elem.get('x', 0)), int(offset_elem.get('y', 0)))

        tileset.properties = parse_properties(elem)

        # Parse tileset image (for spritesheet tilesets)
        img_elem = elem.find('image')
        if img_elem is not None:
            tileset.image = Image.from_xml(img_elem)

        # Parse individual tile definitions
        # Only tiles with metadata (properties, animations, images) are listed
        for tile_elem in elem.findall('tile'):
            tile = Tile.from_xml(tile_elem)
            tileset.tiles[tile.id] = tile

        return tileset

    @classmethod
    def parse(cls, data: Union[bytes, str], path: str = "") -> 'Tileset':
        """
        Parse a standalone .tsx document.

        The returned tileset has firstgid=0; first GIDs belong to the map
        that references the tileset, not to the tileset itself.
        """
        root = _parse_root(data, path, 'tileset')
        try:
            return cls.from_xml(root, firstgid=0)
        except TmxFormatError as e:
            raise TmxFormatError(e.reason, path) from e
        except ValueError as e:
            raise TmxFormatError(str(e), path) from e

    @property
    def is_reference(self) -> bool:
        """True for `<tileset firstgid=".." source=".."/>` stubs inside a TMX."""
        return self.source is not None


# =============================================================================
# TILE DATA DECODING
# =============================================================================

def decode_gids(elem: ET.Element, encoding: Optional[str],
                compression: Optional[str]) -> array.array:
    """
    Decode the GIDs stored in a <data> or <chunk> element.

    Returns an array.array('I') of raw GIDs (flip flags included).

    ==========================================================================
    DATA ENCODINGS
    ==========================================================================

    1. XML (deprecated):
       <data>
           <tile gid="1"/><tile gid="2"/><tile/>...
       </data>

    2. CSV:
       <data encoding="csv">
           1,2,3,4,5,
           6,7,8,9,10
       </data>

    3. Base64 (optionally compressed with zlib, gzip or zstd):
       <data encoding="base64" compression="zlib">
           eJxjZGBgYAQAAA0AAg==
       </data>

    Binary payloads are little-endian uint32, one per cell.

    ==========================================================================
    """
    if encoding == 'csv':
        # -----------------------------------------------------------------
        # CSV FORMAT
        # -----------------------------------------------------------------
        # Data looks like: "1,2,3,4,\n5,6,7,8,\n..."
        csv_data = (elem.text or '').strip()
        try:
            gids = [int(x) for x in csv_data.replace('\n', '').split(',') if x.strip()]
        except ValueError as e:
            raise TmxFormatError(f"invalid CSV tile data ({e})") from e
        return array.array('I', gids)

    if encoding == 'base64':
        # -----------------------------------------------------------------
        # BASE64 FORMAT
        # -----------------------------------------------------------------
        b64_data = (elem.text or '').strip()
        try:
            raw_data = base64.b64decode(b64_data)
        except ValueError as e:
            raise TmxFormatError(f"invalid base64 tile data ({e})") from e

        # -----------------------------------------------------------------
        # DECOMPRESSION (if compressed)
        # -----------------------------------------------------------------
        try:
            if compression == 'zlib':
                raw_data = zlib.decompress(raw_data)
            elif compression == 'gzip':
                raw_data = gzip.decompress(raw_data)
            elif compression == 'zstd':
                dctx = zstandard.ZstdDecompressor()
                raw_data = dctx.decompressobj().decompress(raw_data)
            elif compression:
                raise TmxFormatError(f"unsupported compression {compression!r}")
        except (zlib.error, OSError, EOFError, zstandard.ZstdError) as e:
            raise TmxFormatError(f"corrupt {compression} tile data ({e})") from e

        # -----------------------------------------------------------------
        # CONVERT BYTES TO UINT32 ARRAY
        # -----------------------------------------------------------------
        if len(raw_data) % 4:
            raise TmxFormatError(
                f"tile data is {len(raw_data)} bytes, not a multiple of 4"
            )
        tiles = array.array('I')
        tiles.frombytes(raw_data)
        if sys.byteorder == 'big':
            tiles.byteswap()
        return tiles

    if encoding:
        raise TmxFormatError(f"unsupported encoding {encoding!r}")

    # -----------------------------------------------------------------
    # XML FORMAT (deprecated)
    # -----------------------------------------------------------------
    return array.array('I', [int(t.get('gid', 0)) for t in elem.findall('tile')])


@dataclass
class Chunk:
    """
    A block of tile data in an infinite map.

    x, y are in TILES (not chunks) and are usually multiples of the chunk
    size; they can be negative because infinite maps grow in every
    direction.
    """
    x: int
    y: int
    width: int
    height: int
    tiles: array.array = field(default_factory=lambda: array.array('I'))

    def get_tile_gid(self, x: int, y: int) -> int:
        """GID at chunk-local (x, y); 0 when out of range."""
        if 0 <= x < self.width and 0 <= y < self.height:
            return self.tiles[y * self.width + x]
        return 0


@dataclass
class LayerData:
    """
    Tile layer data storage.

    Handles the actual tile data within a layer - the grid of GIDs that
    defines which tile appears at each position.

    ==========================================================================
    INTERNAL STORAGE
    ==========================================================================

    Finite maps: `tiles` holds width*height GIDs, index = y * width + x.
    Infinite maps: `tiles` is empty and `chunks` holds the sparse blocks.

    Tiles are stored as array.array('I') - unsigned 32-bit ints. This is:
    - Memory efficient (4 bytes per tile)
    - Fast to access (C-level array)
    - Easy to convert to/from binary formats

    ==========================================================================
    """
    encoding: Optional[str] = None      # csv, base64, or None (XML)
    compression: Optional[str] = None   # gzip, zlib, zstd, or None
    tiles: array.array = field(default_factory=lambda: array.array('I'))
    chunks: List[Chunk] = field(default_factory=list)

    def decode_data(self, data_elem: ET.Element, width: int, height: int):
        """
        Decode tile data from XML element.

        Parameters:
        -----------
        data_elem : ET.Element
            The <data> XML element containing tile data or <chunk>s
        width, height : int
            Layer dimensions (checked against finite data)
        """
        self.encoding = data_elem.get('encoding')
        self.compression = data_elem.get('compression')

        chunk_elems = data_elem.findall('chunk')
        if chunk_elems:
            for chunk_elem in chunk_elems:
                chunk = Chunk(
                    x=int(chunk_elem.get('x', 0)),
                    y=int(chunk_elem.get('y', 0)),
                    width=int(chunk_elem.get('width', 0)),
                    height=int(chunk_elem.get('height', 0)),
                )
                chunk.tiles = decode_gids(chunk_elem, self.encoding, self.compression)
                if len(chunk.tiles) != chunk.width * chunk.height:
                    raise TmxFormatError(
                        f"chunk at ({chunk.x}, {chunk.y}) has {len(chunk.tiles)} tiles, "
                        f"expected {chunk.width * chunk.height}"
                    )
                self.chunks.append(chunk)
            return

        self.tiles = decode_gids(data_elem, self.encoding, self.compression)
        # Empty infinite layers are written as an empty <data>
        if self.tiles and len(self.tiles) != width * height:
            raise TmxFormatError(
                f"layer data has {len(self.tiles)} tiles, expected {width}x{height}"
            )


# =============================================================================
# LAYER BASE
# =============================================================================

def _layer_attrs(elem: ET.Element) -> Dict[str, Any]:
    """Attributes shared by every layer element."""
    return dict(
        name=elem.get('name', ''),
        id=int(elem.get('id', 0)),
        # '1' is default for visible (absent means visible)
        visible=_bool_attr(elem, 'visible'),
        opacity=float(elem.get('opacity', 1.0)),
        offsetx=float(elem.get('offsetx', 0)),
        offsety=float(elem.get('offsety', 0)),
        parallaxx=float(elem.get('parallaxx', 1.0)),
        parallaxy=float(elem.get('parallaxy', 1.0)),
        tintcolor=elem.get('tintcolor'),
        type=elem.get('class', ''),
        properties=parse_properties(elem),
    )


# =============================================================================
# TILE LAYER CLASS
# =============================================================================

@dataclass
class TileLayer:
    """
    Tile layer - a grid of tile references.

    The main content layer type in TMX. Contains a 2D grid where each cell
    references a tile by its Global ID (GID).

    ==========================================================================
    LAYER PROPERTIES
    ==========================================================================

    Rendering properties:
    - visible: Whether layer is rendered
    - opacity: Transparency (0.0 = invisible, 1.0 = opaque)
    - tintcolor: Color tint applied to all tiles

    Positioning:
    - offsetx, offsety: Pixel offset from map origin
    - parallaxx, parallaxy: Parallax scrolling factors
      (1.0 = normal, 0.5 = half speed, 0 = static background)

    ==========================================================================
    TILE ACCESS
    ==========================================================================

        gid = layer.get_tile_gid(5, 10)  # Get tile at column 5, row 10

    For infinite maps the layer width/height are 0 in the file; content
    lives in `data.chunks` and get_tile_gid() searches the chunks.

    ==========================================================================
    """
    name: str                                        # Layer name
    width: int                                       # Width in tiles
    height: int                                      # Height in tiles
    id: int = 0                                      # Unique layer ID
    visible: bool = True                             # Is layer rendered?
    opacity: float = 1.0                             # Transparency
    offsetx: float = 0                               # X pixel offset
    offsety: float = 0                               # Y pixel offset
    parallaxx: float = 1.0                           # Parallax X factor
    parallaxy: float = 1.0                           # Parallax Y factor
    tintcolor: Optional[str] = None                  # Color tint (#AARRGGBB)
    type: str = ""                                   # Layer class
    properties: Dict[str, Property] = field(default_factory=dict)
    data: LayerData = field(default_factory=LayerData)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'TileLayer':
        """Parse tile layer from XML element."""
        layer = cls(
            width=int(elem.get('width', 0)),
            height=int(elem.get('height', 0)),
            **_layer_attrs(elem)
        )

        # Parse tile data
        data_elem = elem.find('data')
        if data_elem is not None:
            layer.data = LayerData()
            layer.data.decode_data(data_elem, layer.width, layer.height)

        return layer

    @property
    def is_chunked(self) -> bool:
        return bool(self.data.chunks)

    def get_tile_gid(self, x: int, y: int) -> int:
        """
        Get the GID of the tile at position (x, y).

        Parameters:
        -----------
        x : int
            Column (0 to width-1; any value for infinite layers)
        y : int
            Row (0 to height-1; any value for infinite layers)

        Returns:
        --------
        int : Global tile ID (0 = empty, >0 = tile reference)
        """
        if self.data.chunks:
            for chunk in self.data.chunks:
                if chunk.x <= x < chunk.x + chunk.width and chunk.y <= y < chunk.y + chunk.height:
                    return chunk.get_tile_gid(x - chunk.x, y - chunk.y)
            return 0
        if 0 <= x < self.width and 0 <= y < self.height and self.data.tiles:
            # Convert 2D coords to 1D index: row-major order
            return self.data.tiles[y * self.width + x]
        return 0  # Out of bounds = empty


# =============================================================================
# MAP OBJECT CLASS
# =============================================================================

@dataclass
class Text:
    """Payload of a text object (<text> child)."""
    text: str = ""
    fontfamily: str = "sans-serif"
    pixelsize: int = 16
    wrap: bool = False
    color: Optional[Color] = None
    bold: bool = False
    italic: bool = False
    halign: str = "left"
    valign: str = "top"

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Text':
        return cls(
            text=elem.text or '',
            fontfamily=elem.get('fontfamily', 'sans-serif'),
            pixelsize=int(elem.get('pixelsize', 16)),
            wrap=_bool_attr(elem, 'wrap', '0'),
            color=Color.parse(elem.get('color')),
            bold=_bool_attr(elem, 'bold', '0'),
            italic=_bool_attr(elem, 'italic', '0'),
            halign=elem.get('halign', 'left'),
            valign=elem.get('valign', 'top'),
        )


def _parse_points(text: str) -> List[Tuple[float, float]]:
    """Parse "x1,y1 x2,y2 ..." into a list of tuples (order preserved)."""
    points = []
    for pair in text.split():
        x, _, y = pair.partition(',')
        points.append((float(x), float(y)))
    return points


# Shape names used by MapObject.shape
SHAPE_RECTANGLE = "rectangle"
SHAPE_ELLIPSE = "ellipse"
SHAPE_POINT = "point"
SHAPE_POLYGON = "polygon"
SHAPE_POLYLINE = "polyline"
SHAPE_TEXT = "text"


@dataclass
class MapObject:
    """
    Object in an object layer (or in a tile's collision group).

    Objects are vector shapes placed on the map, used for:
    - Collision shapes (rectangles, polygons)
    - Spawn points (position only)
    - Trigger areas
    - Entity placement (tile objects)

    ==========================================================================
    OBJECT SHAPES
    ==========================================================================

    The shape is given by a child element (none means rectangle):

        <object id="1" x="0" y="0" width="32" height="16"/>      rectangle
        <object id="2" ...><ellipse/></object>                   ellipse
        <object id="3" x="5" y="5"><point/></object>             point
        <object id="4" ...><polygon points="0,0 8,0 4,8"/>       polygon
        <object id="5" ...><polyline points="0,0 8,8"/>          polyline
        <object id="6" ...><text>Hello</text></object>           text
        <object id="7" gid="12" width="16" height="16"/>         tile object

    Polygon/polyline points are relative to the object's (x, y).
    Tile objects are anchored at their BOTTOM-left corner, all other
    shapes at their TOP-left corner.

    ==========================================================================
    TEMPLATES
    ==========================================================================

    <object id="8" template="chest.tx" x="64" y="32"/>

    Only the attributes that differ from the template are written.
    `explicit` records which attributes/children this element really set,
    so a template merge knows what to keep.

    ==========================================================================
    """
    id: int                                          # Unique object ID
    name: str = ""                                   # Object name
    type: str = ""                                   # Object type/class
    x: float = 0                                     # X position
    y: float = 0                                     # Y position
    width: float = 0                                 # Width (0 for points)
    height: float = 0                                # Height (0 for points)
    rotation: float = 0                              # Rotation in degrees (clockwise)
    gid: Optional[int] = None                        # Tile GID (for tile objects)
    visible: bool = True                             # Is object visible?
    shape: str = SHAPE_RECTANGLE                     # See SHAPE_* constants
    points: List[Tuple[float, float]] = field(default_factory=list)
    text: Optional[Text] = None
    template: Optional[str] = None                   # .tx path (relative)
    properties: Dict[str, Property] = field(default_factory=dict)
    explicit: Set[str] = field(default_factory=set)  # Attributes set in the file

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'MapObject':
        """Parse object from XML element."""
        obj = cls(
            id=int(elem.get('id', 0)),
            name=elem.get('name', ''),
            # Tiled 1.9 renamed 'type' to 'class'
            type=elem.get('class', elem.get('type', '')),
            x=float(elem.get('x', 0)),
            y=float(elem.get('y', 0)),
            width=float(elem.get('width', 0)),
            height=float(elem.get('height', 0)),
            rotation=float(elem.get('rotation', 0)),
            visible=_bool_attr(elem, 'visible'),
            template=elem.get('template'),
        )
        obj.explicit = set(elem.attrib)
        if 'class' in obj.explicit:
            obj.explicit.add('type')

        # GID only present for tile objects
        if elem.get('gid'):
            obj.gid = int(elem.get('gid'))

        # -----------------------------------------------------------------
        # SHAPE CHILD ELEMENT
        # -----------------------------------------------------------------
        if elem.find('ellipse') is not None:
            obj.shape = SHAPE_ELLIPSE
        elif elem.find('point') is not None:
            obj.shape = SHAPE_POINT
        elif elem.find('polygon') is not None:
            obj.shape = SHAPE_POLYGON
            obj.points = _parse_points(elem.find('polygon').get('points', ''))
        elif elem.find('polyline') is not None:
            obj.shape = SHAPE_POLYLINE
            obj.points = _parse_points(elem.find('polyline').get('points', ''))
        elif elem.find('text') is not None:
            obj.shape = SHAPE_TEXT
            obj.text = Text.from_xml(elem.find('text'))

        if any(elem.find(tag) is not None for tag in
               ('ellipse', 'point', 'polygon', 'polyline', 'text')):
            obj.explicit.add('shape')

        obj.properties = parse_properties(elem)

        return obj


# =============================================================================
# OBJECT GROUP CLASS
# =============================================================================

@dataclass
class ObjectGroup:
    """
    Object layer - contains vector objects.

    Used for non-tile data:
    - Collision shapes
    - Spawn points
    - Triggers and zones
    - Entity placements

    Objects are stored in a list (order may matter for some games).
    """
    name: str                                        # Layer name
    id: int = 0                                      # Unique layer ID
    visible: bool = True                             # Is layer visible?
    opacity: float = 1.0                             # Transparency
    offsetx: float = 0                               # X pixel offset
    offsety: float = 0                               # Y pixel offset
    parallaxx: float = 1.0                           # Parallax X factor
    parallaxy: float = 1.0                           # Parallax Y factor
    tintcolor: Optional[str] = None                  # Color tint
    type: str = ""                                   # Layer class
    color: Optional[str] = None                      # Editor display color
    draworder: str = "topdown"                       # topdown or index
    properties: Dict[str, Property] = field(default_factory=dict)
    objects: List[MapObject] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'ObjectGroup':
        """Parse object group from XML element."""
        group = cls(
            color=elem.get('color'),
            draworder=elem.get('draworder', 'topdown'),
            **_layer_attrs(elem)
        )

        for obj_elem in elem.findall('object'):
            group.objects.append(MapObject.from_xml(obj_elem))

        return group


# =============================================================================
# IMAGE LAYER CLASS
# =============================================================================

@dataclass
class ImageLayer:
    """
    Image layer - a single image drawn at the layer offset.

    Typical uses are backgrounds and parallax skies:

        <imagelayer id="4" name="Sky" parallaxx="0.2" repeatx="1">
            <image source="sky.png" width="640" height="360"/>
        </imagelayer>
    """
    name: str
    id: int = 0
    visible: bool = True
    opacity: float = 1.0
    offsetx: float = 0
    offsety: float = 0
    parallaxx: float = 1.0
    parallaxy: float = 1.0
    tintcolor: Optional[str] = None
    type: str = ""
    repeatx: bool = False
    repeaty: bool = False
    properties: Dict[str, Property] = field(default_factory=dict)
    image: Optional[Image] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'ImageLayer':
        layer = cls(
            repeatx=_bool_attr(elem, 'repeatx', '0'),
            repeaty=_bool_attr(elem, 'repeaty', '0'),
            **_layer_attrs(elem)
        )
        img_elem = elem.find('image')
        if img_elem is not None and img_elem.get('source'):
            layer.image = Image.from_xml(img_elem)
        return layer


# =============================================================================
# LAYER GROUP CLASS
# =============================================================================

@dataclass
class LayerGroup:
    """
    Group of layers - a folder containing other layers.

    Layer groups help organize complex maps:

    Layers:
    ├── Background (group)
    │   ├── Sky
    │   └── Mountains
    ├── Gameplay (group)
    │   ├── Ground
    │   ├── Objects
    │   └── Collisions
    └── Foreground

    Groups can be nested (groups within groups).
    """
    name: str                                        # Group name
    id: int = 0                                      # Unique ID
    visible: bool = True                             # Is group visible?
    opacity: float = 1.0                             # Transparency (affects all children)
    offsetx: float = 0                               # X offset (affects all children)
    offsety: float = 0                               # Y offset
    parallaxx: float = 1.0                           # Parallax X
    parallaxy: float = 1.0                           # Parallax Y
    tintcolor: Optional[str] = None                  # Color tint
    type: str = ""                                   # Layer class
    properties: Dict[str, Property] = field(default_factory=dict)
    # Recursive type: can contain any layer, including more LayerGroups
    layers: List['AnyLayer'] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'LayerGroup':
        """Parse layer group from XML element."""
        group = cls(**_layer_attrs(elem))

        # -----------------------------------------------------------------
        # RECURSIVELY LOAD CHILD LAYERS
        # -----------------------------------------------------------------
        # Groups can contain any layer type, including nested groups
        group.layers = _parse_layers(elem)
        return group


AnyLayer = Union[TileLayer, ObjectGroup, ImageLayer, LayerGroup]


def _parse_layers(parent: ET.Element) -> List[AnyLayer]:
    """Parse the layer children of <map> or <group>, keeping document order."""
    layers: List[AnyLayer] = []
    for child in parent:
        if child.tag == 'layer':
            layers.append(TileLayer.from_xml(child))
        elif child.tag == 'objectgroup':
            layers.append(ObjectGroup.from_xml(child))
        elif child.tag == 'imagelayer':
            layers.append(ImageLayer.from_xml(child))
        elif child.tag == 'group':
            layers.append(LayerGroup.from_xml(child))
        # Note: tileset and properties are handled by the caller
    return layers


# =============================================================================
# TEMPLATE CLASS
# =============================================================================

@dataclass
class Template:
    """
    Object template (.tx file).

        <template>
            <tileset firstgid="1" source="../tilesets/items.tsx"/>
            <object name="chest" gid="3" width="16" height="16"/>
        </template>

    The tileset reference (if any) gives meaning to the template object's
    gid; it is NOT the map's tileset table.
    """
    object: MapObject
    tileset: Optional[Tileset] = None

    @classmethod
    def parse(cls, data: Union[bytes, str], path: str = "") -> 'Template':
        root = _parse_root(data, path, 'template')
        obj_elem = root.find('object')
        if obj_elem is None:
            raise TmxFormatError("template has no <object>", path)
        try:
            tileset = None
            ts_elem = root.find('tileset')
            if ts_elem is not None:
                tileset = Tileset.from_xml(ts_elem, int(ts_elem.get('firstgid', 1)))
            return cls(object=MapObject.from_xml(obj_elem), tileset=tileset)
        except TmxFormatError as e:
            raise TmxFormatError(e.reason, path) from e
        except ValueError as e:
            raise TmxFormatError(str(e), path) from e


# =============================================================================
# TILED MAP CLASS (Main Entry Point)
# =============================================================================

@dataclass
class TiledMap:
    """
    Complete Tiled map - the root object for TMX files.

    It contains:
    - Map metadata (size, orientation, tile size)
    - Tilesets (embedded definitions or references to TSX files)
    - Layers (tile layers, object layers, image layers, groups)
    - Custom properties

    ==========================================================================
    MAP ORIENTATIONS
    ==========================================================================

    ORTHOGONAL (most common):
        Standard square grid, tiles aligned in rows and columns.
        +---+---+---+
        | 0 | 1 | 2 |
        +---+---+---+
        | 3 | 4 | 5 |
        +---+---+---+

    ISOMETRIC:
        Diamond-shaped tiles for pseudo-3D effect.
           /\\
          /0 \\
         /\\  /\\
        /1 \\/2 \\

    STAGGERED:
        Offset rows/columns (isometric without rotation).

    HEXAGONAL:
        Hexagon tiles for strategy games.

    ==========================================================================
    INFINITE MAPS
    ==========================================================================

    With infinite="1" the map has no fixed size: width/height describe the
    editor viewport only and tile layers store 16x16 <chunk>s at arbitrary
    (possibly negative) tile coordinates.

    ==========================================================================
    USAGE
    ==========================================================================

        raw = TiledMap.parse(Path("maps/level1.tmx").read_bytes(), "maps/level1.tmx")
        print(f"Map size: {raw.width}x{raw.height}")
        ground = raw.get_layer_by_name("Ground")
        tile_gid = ground.get_tile_gid(5, 10)

    ==========================================================================
    """
    version: str = "1.10"                            # TMX format version
    tiledversion: str = ""                           # Tiled editor version
    orientation: str = "orthogonal"                  # Map orientation
    renderorder: str = "right-down"                  # Render order
    width: int = 0                                   # Map width in tiles
    height: int = 0                                  # Map height in tiles
    tilewidth: int = 0                               # Tile width in pixels
    tileheight: int = 0                              # Tile height in pixels
    infinite: bool = False                           # Is map infinite?
    backgroundcolor: Optional[Color] = None
    type: str = ""                                   # Map class
    properties: Dict[str, Property] = field(default_factory=dict)
    tilesets: List[Tileset] = field(default_factory=list)
    layers: List[AnyLayer] = field(default_factory=list)

    @classmethod
    def parse(cls, data: Union[bytes, str], path: str = "") -> 'TiledMap':
        """
        Parse a TMX document.

        Parameters:
        -----------
        data : bytes or str
            The XML document
        path : str
            Logical path, only used in error messages

        Returns:
        --------
        TiledMap : Parsed map object (external tilesets left as references)

        Raises:
        -------
        TmxFormatError : If the XML is malformed or the data is inconsistent
        """
        root = _parse_root(data, path, 'map')
        try:
            return cls._from_root(root)
        except TmxFormatError as e:
            raise TmxFormatError(e.reason, path) from e
        except ValueError as e:
            raise TmxFormatError(str(e), path) from e

    @classmethod
    def _from_root(cls, root: ET.Element) -> 'TiledMap':
        # -----------------------------------------------------------------
        # PARSE MAP ATTRIBUTES
        # -----------------------------------------------------------------
        map_obj = cls(
            version=root.get('version', '1.0'),
            tiledversion=root.get('tiledversion', ''),
            orientation=root.get('orientation', 'orthogonal'),
            renderorder=root.get('renderorder', 'right-down'),
            width=int(root.get('width', 0)),
            height=int(root.get('height', 0)),
            tilewidth=int(root.get('tilewidth', 0)),
            tileheight=int(root.get('tileheight', 0)),
            infinite=_bool_attr(root, 'infinite', '0'),
            backgroundcolor=Color.parse(root.get('backgroundcolor')),
            type=root.get('class', ''),
        )

        map_obj.properties = parse_properties(root)

        # -----------------------------------------------------------------
        # PARSE TILESETS
        # -----------------------------------------------------------------
        # External tilesets stay as references (firstgid + source); the
        # runtime loader resolves and caches the TSX files.
        for tileset_elem in root.findall('tileset'):
            firstgid = int(tileset_elem.get('firstgid', 1))
            if tileset_elem.get('source'):
                tileset = Tileset(
                    firstgid=firstgid,
                    name='',
                    tilewidth=map_obj.tilewidth,
                    tileheight=map_obj.tileheight,
                    source=tileset_elem.get('source'),
                )
            else:
                tileset = Tileset.from_xml(tileset_elem, firstgid)
            map_obj.tilesets.append(tileset)

        # -----------------------------------------------------------------
        # PARSE LAYERS
        # -----------------------------------------------------------------
        map_obj.layers = _parse_layers(root)
        return map_obj

    def get_layer_by_name(self, name: str) -> Optional[AnyLayer]:
        """
        Find a layer by name (searches recursively through groups).

        Parameters:
        -----------
        name : str
            Layer name to find

        Returns:
        --------
        Layer or None : The found layer, or None if not found
        """
        def search_layers(layers):
            for layer in layers:
                if layer.name == name:
                    return layer
                # Recursively search inside groups
                if isinstance(layer, LayerGroup):
                    result = search_layers(layer.layers)
                    if result:
                        return result
            return None

        return search_layers(self.layers)

    def get_all_layers_flat(self, include_groups: bool = False) -> List[AnyLayer]:
        """
        Get all layers in a flat list (expanding groups recursively).

        Useful when you need to iterate through all layers regardless
        of group hierarchy.

        Parameters:
        -----------
        include_groups : bool
            Also list the LayerGroup objects themselves (before their children)

        Returns:
        --------
        List : Layers in document (depth-first) order
        """
        result = []

        def flatten(layers):
            for layer in layers:
                if isinstance(layer, LayerGroup):
                    if include_groups:
                        result.append(layer)
                    # Recurse into group
                    flatten(layer.layers)
                else:
                    result.append(layer)

        flatten(self.layers)
        return result

    def iter_objects(self):
        """Yield (object_group, object) for every object in every object layer."""
        for layer in self.get_all_layers_flat():
            if isinstance(layer, ObjectGroup):
                for obj in layer.objects:
                    yield layer, obj
