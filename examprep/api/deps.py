from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from examprep.core.auth import require_roles

student = require_roles("student", "admin")
author = require_roles("admin", "author")


class CamelModel(BaseModel):
    """Request bodies are camelCase on the wire and snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
