"""
Attendance Rules

Typed rule variants deciding when a scheduling thread may be finalized, and
the versioned document form they are persisted in. Every stored document
carries an explicit `version` and `type`:

- version 1: the legacy loose shape, a `type` string plus optional
  `participants`, `k`, `required`, `optional`, `quorum` and `groups` fields
- version 2: one strict shape per variant carrying only its own fields

Documents are always written as version 2.
"""

import json
import logging
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

RULE_DOCUMENT_VERSION = 2
SUPPORTED_RULE_VERSIONS = (1, 2)

class InvalidRuleError(ValueError):
    """Raised when a rule document cannot be interpreted"""

class _RuleBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')

class AnyRule(_RuleBase):
    """The first slot anyone selects wins"""
    type: Literal['ANY'] = 'ANY'

class AllRule(_RuleBase):
    """A slot wins when exactly these participants selected it; an empty pool never does"""
    type: Literal['ALL'] = 'ALL'
    participants: List[str]

class KOfNRule(_RuleBase):
    """A slot wins when k members of the pool selected it; an empty pool never does"""
    type: Literal['K_OF_N'] = 'K_OF_N'
    participants: List[str]
    k: int = Field(1, ge=1)

class RequiredPlusKRule(_RuleBase):
    """A slot wins when every required participant and `quorum` optional ones selected it"""
    type: Literal['REQUIRED_PLUS_K'] = 'REQUIRED_PLUS_K'
    required: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)
    quorum: int = Field(1, ge=0)

class AttendanceGroup(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')

    id: str = Field(..., min_length=1)
    members: List[str] = Field(default_factory=list)

class GroupAnyRule(_RuleBase):
    """A slot wins as soon as one member of any group selected it"""
    type: Literal['GROUP_ANY'] = 'GROUP_ANY'
    groups: List[AttendanceGroup] = Field(default_factory=list)

AttendanceRule = Annotated[
    Union[AnyRule, AllRule, KOfNRule, RequiredPlusKRule, GroupAnyRule],
    Field(discriminator='type')
]

RULE_TYPES = ('ANY', 'ALL', 'K_OF_N', 'REQUIRED_PLUS_K', 'GROUP_ANY')

DEFAULT_RULE = AnyRule()

_rule_adapter = TypeAdapter(AttendanceRule)

# Fields of the loose version 1 document that apply to each variant
_V1_FIELDS = {
    'ANY': (),
    'ALL': ('participants',),
    'K_OF_N': ('participants', 'k'),
    'REQUIRED_PLUS_K': ('required', 'optional', 'quorum'),
    'GROUP_ANY': ('groups',),
}

def _from_v1(document: Dict[str, Any]) -> Dict[str, Any]:
    rule_type = document.get('type')
    if rule_type == 'EXPRESSION':
        raise InvalidRuleError("EXPRESSION rules are not supported")
    if rule_type not in _V1_FIELDS:
        raise InvalidRuleError(f"Unknown rule type: {rule_type!r}")

    upgraded: Dict[str, Any] = {'type': rule_type}
    for name in _V1_FIELDS[rule_type]:
        value = document.get(name)
        if value is None:
            if name == 'participants':
                upgraded[name] = []
            continue
        # version 1 treated a zero k or quorum as "use the default"
        if name in ('k', 'quorum') and value == 0:
            continue
        upgraded[name] = value
    return upgraded

def parse_rule(document: Any) -> AttendanceRule:
    """
    Interpret a stored rule document

    Args:
        document: Rule model, dict or JSON string with `version` and `type`

    Returns:
        The matching rule variant

    Raises:
        InvalidRuleError: on unknown versions or types, or invalid field values
    """
    if isinstance(document, (AnyRule, AllRule, KOfNRule, RequiredPlusKRule, GroupAnyRule)):
        return document

    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise InvalidRuleError(f"Rule document is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise InvalidRuleError(f"Rule document must be an object, got {type(document).__name__}")

    version = document.get('version')
    if version not in SUPPORTED_RULE_VERSIONS:
        raise InvalidRuleError(f"Unsupported rule version: {version!r}")

    if version == 1:
        payload = _from_v1(document)
    else:
        payload = {key: value for key, value in document.items() if key != 'version'}
        if payload.get('type') not in RULE_TYPES:
            raise InvalidRuleError(f"Unknown rule type: {payload.get('type')!r}")

    try:
        return _rule_adapter.validate_python(payload)
    except ValidationError as e:
        raise InvalidRuleError(f"Invalid {payload.get('type')} rule: {e}") from e

def dump_rule(rule: AttendanceRule) -> Dict[str, Any]:
    """Serialize a rule as a version 2 document"""
    return {'version': RULE_DOCUMENT_VERSION, **rule.model_dump(mode='json')}

__all__ = [
    'RULE_DOCUMENT_VERSION',
    'RULE_TYPES',
    'InvalidRuleError',
    'AnyRule',
    'AllRule',
    'KOfNRule',
    'RequiredPlusKRule',
    'AttendanceGroup',
    'GroupAnyRule',
    'AttendanceRule',
    'DEFAULT_RULE',
    'parse_rule',
    'dump_rule'
]
