from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Instance(BaseModel):
    """A MinIO deployment whose buckets can be mounted into pods"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    external_url: str = Field(alias="externalUrl")
    short: str

    @property
    def volume_name(self) -> str:
        return self.name.replace("_", "-")


InstancesSchema = TypeAdapter(tuple[Instance, ...])


def load_instances(path: Path) -> tuple[Instance, ...]:
    return InstancesSchema.validate_json(path.read_bytes())
