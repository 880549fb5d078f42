"""
Connection configuration models for HMAC authentication

A ConfigStore is produced fresh by a loader on every authorization attempt
and is never mutated afterwards; narrowing returns a new store.
"""
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, validator


# Request parameter names
CONNECTION_PARAM = "connection"
TIMESTAMP_PARAM = "timestamp"
SIGNATURE_PARAM = "signature"
USERNAME_PARAM = "username"


class Configuration(BaseModel):
    """One authorizable connection target"""
    protocol: str = Field(description="Remote-access protocol (e.g. 'rdp', 'vnc')")
    parameters: Mapping[str, str] = Field(
        default_factory=lambda: MappingProxyType({}),
        description="Connection parameters in declaration order (read-only)"
    )

    @validator('protocol')
    def validate_protocol(cls, v):
        if not v:
            raise ValueError("Configuration protocol must be a non-empty string")
        return v

    @validator('parameters')
    def freeze_parameters(cls, v):
        return MappingProxyType(dict(v))

    def get_parameter(self, name: str) -> Optional[str]:
        """Return the named parameter, or None if it is not set"""
        return self.parameters.get(name)

    def to_dict(self) -> Dict[str, object]:
        return {"protocol": self.protocol, "parameters": dict(self.parameters)}

    class Config:
        frozen = True  # Immutable


class ConfigStore(BaseModel):
    """
    Named connection configurations available to this server.

    An empty store is valid and means no configurations are available.
    """
    configurations: Mapping[str, Configuration] = Field(
        default_factory=lambda: MappingProxyType({})
    )

    @validator('configurations')
    def validate_names(cls, v):
        for name in v:
            if not name:
                raise ValueError("Configuration names must be non-empty")
        return MappingProxyType(dict(v))

    def lookup(self, name: str) -> Optional[Configuration]:
        """Return the configuration registered under name, if any"""
        return self.configurations.get(name)

    def narrow(self, name: str) -> "ConfigStore":
        """
        Return a new store holding only the named configuration

        Raises:
            KeyError: If no configuration has that name
        """
        return ConfigStore(configurations={name: self.configurations[name]})

    def names(self) -> List[str]:
        return list(self.configurations)

    def __len__(self) -> int:
        return len(self.configurations)

    def __contains__(self, name: object) -> bool:
        return name in self.configurations

    class Config:
        frozen = True


class RequestFields(BaseModel):
    """
    Caller-supplied authentication attempt.

    Values are kept exactly as received; parsing the timestamp is part of
    the freshness check so malformed input collapses into a denial.
    """
    connection_id: Optional[str] = Field(default=None, description="Connection name to look up")
    timestamp: Optional[str] = Field(default=None, description="Epoch milliseconds as a decimal string")
    signature: Optional[str] = Field(default=None, description="Base64-encoded HMAC signature")
    username: Optional[str] = Field(default=None, description="Optional caller-supplied username")

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "RequestFields":
        """
        Build request fields from HTTP query/form parameters

        When a parameter is repeated the first occurrence wins; multi-value
        mappings (Starlette QueryParams) are read through getlist.
        """
        getlist = getattr(params, "getlist", None)

        def first(name: str) -> Optional[str]:
            if getlist is None:
                return params.get(name)
            values = getlist(name)
            return values[0] if values else None

        return cls(
            connection_id=first(CONNECTION_PARAM),
            timestamp=first(TIMESTAMP_PARAM),
            signature=first(SIGNATURE_PARAM),
            username=first(USERNAME_PARAM),
        )

    class Config:
        frozen = True
