"""
Tiled project files (.tiled-project)

=============================================================================
FILE LAYOUT
=============================================================================

    {
        "automappingRulesFile": "",
        "commands": [],
        "compatibilityVersion": 1100,
        "extensionsPath": "extensions",
        "folders": ["."],
        "properties": [
            {"name": "game_title", "type": "string", "value": "Dungeon"}
        ],
        "propertyTypes": [
            {"id": 1, "name": "game::Health", "type": "class",
             "members": [{"name": "max", "type": "int", "value": 100}], ...},
            {"id": 2, "name": "game::Direction", "type": "enum",
             "storageType": "string", "values": ["North", "South"], ...}
        ]
    }

The models below validate this with pydantic; unknown keys are ignored so
files written by newer Tiled versions still load.

=============================================================================
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..errors import ParseError

T = TypeVar("T")


class ClassMember(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    type: str = "string"
    value: Any = None
    property_type: Optional[str] = Field(default=None, alias="propertyType")


class ClassDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    name: str
    type: Literal["class"] = "class"
    members: List[ClassMember] = Field(default_factory=list)
    color: str = "#000000"
    draw_fill: bool = Field(default=True, alias="drawFill")
    use_as: List[str] = Field(default_factory=lambda: ["property"], alias="useAs")


class EnumDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    name: str
    type: Literal["enum"] = "enum"
    values: List[str] = Field(default_factory=list)
    storage_type: str = Field(default="string", alias="storageType")
    values_as_flags: bool = Field(default=False, alias="valuesAsFlags")


PropertyTypeDefinition = Annotated[Union[ClassDefinition, EnumDefinition],
                                   Field(discriminator="type")]


class ProjectProperty(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    type: str = "string"
    value: Any = None
    property_type: Optional[str] = Field(default=None, alias="propertyType")


class TiledProjectFile(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    automapping_rules_file: str = Field(default="", alias="automappingRulesFile")
    commands: List[Any] = Field(default_factory=list)
    compatibility_version: int = Field(default=1100, alias="compatibilityVersion")
    extensions_path: str = Field(default="extensions", alias="extensionsPath")
    folders: List[str] = Field(default_factory=lambda: ["."])
    properties: List[ProjectProperty] = Field(default_factory=list)
    property_types: List[PropertyTypeDefinition] = Field(default_factory=list,
                                                         alias="propertyTypes")


class ProjectProperties:
    """
    Read access to a loaded project.

    Usage:
        project = ProjectProperties.from_json("game.tiled-project", payload)
        if project.has_enum("game::Direction"):
            print(project.get_enum("game::Direction").values)
        hp = project.get_member_value("game::Health", "max")
        health = project.get_class_as("game::Health", HealthDefaults)
    """

    def __init__(self, project: TiledProjectFile, path: str = ""):
        self.path = path
        self.project = project
        self._classes: Dict[str, ClassDefinition] = {}
        self._enums: Dict[str, EnumDefinition] = {}
        for definition in project.property_types:
            if isinstance(definition, ClassDefinition):
                self._classes[definition.name] = definition
            else:
                self._enums[definition.name] = definition
        self._properties = {prop.name: prop for prop in project.properties}

    @classmethod
    def from_json(cls, path: str, payload: Any) -> 'ProjectProperties':
        try:
            project = TiledProjectFile.model_validate(payload)
        except ValidationError as e:
            raise ParseError(path, f"invalid project file ({e.error_count()} errors: "
                                   f"{e.errors()[0]['msg']})") from e
        return cls(project, path)

    # Property types

    def get_class(self, name: str) -> Optional[ClassDefinition]:
        return self._classes.get(name)

    def get_enum(self, name: str) -> Optional[EnumDefinition]:
        return self._enums.get(name)

    def has_class(self, name: str) -> bool:
        return name in self._classes

    def has_enum(self, name: str) -> bool:
        return name in self._enums

    def get_member_value(self, class_name: str, member_name: str) -> Any:
        """Default value of a class member as stored in the project, or None."""
        definition = self._classes.get(class_name)
        if definition is None:
            return None
        for member in definition.members:
            if member.name == member_name:
                return member.value
        return None

    def get_class_as(self, name: str, model: Type[T]) -> Optional[T]:
        """
        Validate a class's member defaults into `model`.

        `model` can be a pydantic model or a dataclass; members unknown to
        it are ignored by pydantic models and rejected by dataclasses.
        """
        definition = self._classes.get(name)
        if definition is None:
            return None
        values = {member.name: member.value for member in definition.members}
        return TypeAdapter(model).validate_python(values)

    # Top-level project properties

    def get_property(self, name: str) -> Optional[ProjectProperty]:
        return self._properties.get(name)

    def has_property(self, name: str) -> bool:
        return name in self._properties

    def get_property_as(self, name: str, model: Type[T]) -> Optional[T]:
        prop = self._properties.get(name)
        if prop is None:
            return None
        return TypeAdapter(model).validate_python(prop.value)

    @property
    def class_names(self) -> List[str]:
        return sorted(self._classes)

    @property
    def enum_names(self) -> List[str]:
        return sorted(self._enums)
