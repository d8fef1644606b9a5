from __future__ import annotations

import datetime as dt
import ipaddress
from typing import Any, Dict, List, Literal, Optional

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

_url_adapter = TypeAdapter(AnyUrl)


def validate_ip(value: str) -> str:
    v = value.strip()
    try:
        ipaddress.ip_address(v)
    except ValueError:
        raise ValueError("Invalid IP address") from None
    return v


def validate_url(value: str) -> str:
    # Keep the caller's spelling: server grouping compares URLs as plain strings.
    v = value.strip()
    try:
        _url_adapter.validate_python(v)
    except ValueError:
        raise ValueError("Invalid OPC UA URL") from None
    return v


# ----------------
# Upload document
# ----------------


class BitMappingIn(BaseModel):
    address: str
    description: str
    bit_position: int


class MappingMetadataIn(BaseModel):
    bit_count: int
    bit_mappings: Dict[str, BitMappingIn]


class AddressMappingIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    plc_reg_add: str
    # Any data type string is accepted (word, bool, channel, udint, ...).
    data_type: str
    opcua_reg_add: str
    description: str
    Memory_Area: Optional[str] = None
    metadata: Optional[MappingMetadataIn] = None


class RawPLCConfigIn(BaseModel):
    plc_name: str = Field(min_length=1)
    plc_no: int = Field(gt=0)
    plc_ip: str
    opcua_url: str
    address_mappings: List[AddressMappingIn]

    @field_validator("plc_ip")
    @classmethod
    def _ip(cls, v: str) -> str:
        return validate_ip(v)

    @field_validator("opcua_url")
    @classmethod
    def _url(cls, v: str) -> str:
        return validate_url(v)

    def to_raw(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RawDocumentIn(BaseModel):
    plcs: List[RawPLCConfigIn]

    def to_raw(self) -> Dict[str, Any]:
        return {"plcs": [p.to_raw() for p in self.plcs]}


# ----------------
# PLC management
# ----------------


class PLCPatch(BaseModel):
    plc_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    plc_no: Optional[int] = Field(default=None, gt=0)
    plc_ip: Optional[str] = None
    opcua_url: Optional[str] = None
    status: Optional[Literal["active", "maintenance", "error"]] = None
    is_connected: Optional[bool] = None

    @field_validator("plc_ip")
    @classmethod
    def _ip(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else validate_ip(v)

    @field_validator("opcua_url")
    @classmethod
    def _url(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else validate_url(v)


class VariablesIn(BaseModel):
    variables: List[Dict[str, Any]]


# ----------------
# OPC UA nodes
# ----------------


class OpcuaNodeIn(BaseModel):
    plc_no: int = Field(gt=0)
    nodeName: str = Field(min_length=1)
    description: str = Field(min_length=1)
    value: Optional[str] = None
    timestamp: Optional[dt.datetime] = None
    datatype: str = Field(min_length=1)
    regAdd: str = Field(min_length=1)
    userDescription: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "plc_no": self.plc_no,
            "node_name": self.nodeName,
            "description": self.description,
            "value": self.value,
            "timestamp": self.timestamp,
            "datatype": self.datatype,
            "reg_add": self.regAdd,
            "user_description": self.userDescription,
        }


class OpcuaNodePatch(BaseModel):
    plc_no: Optional[int] = Field(default=None, gt=0)
    nodeName: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    value: Optional[str] = None
    timestamp: Optional[dt.datetime] = None
    datatype: Optional[str] = Field(default=None, min_length=1)
    regAdd: Optional[str] = Field(default=None, min_length=1)
    userDescription: Optional[str] = None

    def to_patch(self) -> Dict[str, Any]:
        names = {"nodeName": "node_name", "regAdd": "reg_add", "userDescription": "user_description"}
        return {names.get(k, k): v for k, v in self.model_dump(exclude_unset=True).items()}


class DescriptionIn(BaseModel):
    description: Any = None
