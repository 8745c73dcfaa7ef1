"""
Typed constructor/function arguments and ABI helpers.

The caller decides what each argument is (address, unsigned integer, string or
bool). ``coerce_argument`` exists for untyped JSON coming in over HTTP and
applies the sniffing rules at that boundary only.
"""

import json
import re

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from services.exceptions import InvalidArtifactError

HEX_ADDRESS_PATTERN = re.compile(r'^0x[0-9a-fA-F]{40}$')
DIGITS_PATTERN = re.compile(r'^\d+$')
UINT256_MAX = 2 ** 256 - 1


class ConstructorArg:
    """Base class for a typed ABI argument"""
    abi_type = None

    def __init__(self, value):
        self.value = self._validate(value)

    def _validate(self, value):
        return value

    def to_dict(self):
        return {'type': self.abi_type, 'value': self.value}

    def __eq__(self, other):
        return type(self) is type(other) and self.value == other.value

    def __hash__(self):
        return hash((self.abi_type, self.value))

    def __repr__(self):
        return f'{self.__class__.__name__}({self.value!r})'


class AddressArg(ConstructorArg):
    abi_type = 'address'

    def _validate(self, value):
        if not isinstance(value, str) or not HEX_ADDRESS_PATTERN.match(value):
            raise InvalidArtifactError(f"Not an Ethereum address: {value!r}")
        # eth_abi only accepts lower/upper case or a valid checksum
        return to_checksum_address(value)


class UintArg(ConstructorArg):
    abi_type = 'uint256'

    def to_dict(self):
        # uint256 does not survive a JSON round trip as a number
        return {'type': self.abi_type, 'value': str(self.value)}

    def _validate(self, value):
        if isinstance(value, bool):
            raise InvalidArtifactError(f"Not an unsigned integer: {value!r}")
        if isinstance(value, str):
            if not DIGITS_PATTERN.match(value):
                raise InvalidArtifactError(f"Not an unsigned integer: {value!r}")
            value = int(value)
        if not isinstance(value, int):
            raise InvalidArtifactError(f"Not an unsigned integer: {value!r}")
        if value < 0 or value > UINT256_MAX:
            raise InvalidArtifactError(f"Value out of uint256 range: {value}")
        return value


class StringArg(ConstructorArg):
    abi_type = 'string'

    def _validate(self, value):
        if not isinstance(value, str):
            raise InvalidArtifactError(f"Not a string: {value!r}")
        return value


class BoolArg(ConstructorArg):
    abi_type = 'bool'

    def _validate(self, value):
        if not isinstance(value, bool):
            raise InvalidArtifactError(f"Not a boolean: {value!r}")
        return value


ARG_TYPES = {
    'address': AddressArg,
    'uint256': UintArg,
    'uint': UintArg,
    'string': StringArg,
    'bool': BoolArg,
}


def coerce_argument(raw):
    """Turn an untyped value from a request body into a typed argument"""
    if isinstance(raw, ConstructorArg):
        return raw
    if isinstance(raw, dict):
        arg_type = ARG_TYPES.get(str(raw.get('type', '')).lower())
        if arg_type is None:
            raise InvalidArtifactError(f"Unsupported argument type: {raw.get('type')!r}")
        return arg_type(raw.get('value'))
    if isinstance(raw, bool):
        return BoolArg(raw)
    if isinstance(raw, int):
        return UintArg(raw)
    if isinstance(raw, str):
        if HEX_ADDRESS_PATTERN.match(raw):
            return AddressArg(raw)
        if DIGITS_PATTERN.match(raw):
            return UintArg(raw)
        return StringArg(raw)
    raise InvalidArtifactError(f"Unsupported argument type: {type(raw).__name__}")


def coerce_arguments(raw_args):
    if raw_args is None:
        return []
    if not isinstance(raw_args, (list, tuple)):
        raise InvalidArtifactError("Arguments must be a list")
    return [coerce_argument(raw) for raw in raw_args]


def encode_arguments(args):
    """ABI-encode typed arguments; returns hex without 0x"""
    args = list(args or [])
    for arg in args:
        if not isinstance(arg, ConstructorArg):
            raise InvalidArtifactError(f"Untyped argument: {arg!r}")
    try:
        return encode([arg.abi_type for arg in args], [arg.value for arg in args]).hex()
    except Exception as e:
        raise InvalidArtifactError(f"Failed to encode arguments: {e}") from e


def function_selector(function_name, args=()):
    """4-byte selector for ``name(type1,type2,...)`` as hex without 0x"""
    signature = f"{function_name}({','.join(arg.abi_type for arg in args)})"
    return function_signature_to_4byte_selector(signature).hex()


def encode_function_call(function_name, args=()):
    return '0x' + function_selector(function_name, args) + encode_arguments(args)


def parse_abi(abi_json):
    """Parse ABI JSON text (or pass through an already parsed list)"""
    if isinstance(abi_json, list):
        return abi_json
    try:
        definitions = json.loads(abi_json)
    except (TypeError, ValueError) as e:
        raise InvalidArtifactError(f"Failed to parse ABI: {e}") from e
    if not isinstance(definitions, list):
        raise InvalidArtifactError("ABI must be a JSON list")
    return definitions


def find_function_definition(abi_json, function_name):
    for definition in parse_abi(abi_json):
        if definition.get('type') == 'function' and definition.get('name') == function_name:
            return definition
    return None


def address_getters(abi_json):
    """Names of zero-argument functions returning exactly one address"""
    getters = []
    for definition in parse_abi(abi_json):
        outputs = definition.get('outputs') or []
        if (definition.get('type') == 'function'
                and not definition.get('inputs')
                and len(outputs) == 1
                and outputs[0].get('type') == 'address'):
            getters.append(definition['name'])
    return getters
