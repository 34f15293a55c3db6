"""
ABI builders and sample values shared by the tests.

File: tests/factories.py
"""

from typing import Any, Dict, List, Optional


KNOWN_MALICIOUS = '0xacba164135904dc63c5418b57ff87efd341d7c80'
CLEAN_ADDRESS = '0x1234567890abcdef1234567890abcdef12345678'
OTHER_ADDRESS = '0xabcdefabcdefabcdefabcdefabcdefabcdefabcd'

EIP1167_RUNTIME = (
    '0x363d3d373d3d3d363d73'
    'bebebebebebebebebebebebebebebebebebebebe'
    '5af43d82803e903d91602b57fd5bf3'
)
PLAIN_BYTECODE = '0x6080604052348015600f57600080fd5b50'


# =============================================================================
# ABI BUILDERS
# =============================================================================

def param(type_: str, name: str = '', indexed: Optional[bool] = None) -> Dict[str, Any]:
    data = {'name': name, 'type': type_}
    if indexed is not None:
        data['indexed'] = indexed
    return data


def function(
    name: str,
    inputs: List[str] = (),
    outputs: List[str] = (),
    mutability: str = 'nonpayable',
) -> Dict[str, Any]:
    return {
        'type': 'function',
        'name': name,
        'inputs': [param(t, f'arg{i}') for i, t in enumerate(inputs)],
        'outputs': [param(t) for t in outputs],
        'stateMutability': mutability,
    }


def view(name: str, inputs: List[str] = (), outputs: List[str] = ('uint256',)) -> Dict[str, Any]:
    return function(name, inputs, outputs, mutability='view')


def event(name: str, inputs: List[str] = ()) -> Dict[str, Any]:
    return {
        'type': 'event',
        'name': name,
        'inputs': [param(t, f'p{i}', indexed=i < 2) for i, t in enumerate(inputs)],
        'anonymous': False,
    }


def erc20_abi() -> List[Dict[str, Any]]:
    return [
        view('totalSupply'),
        view('balanceOf', ['address']),
        view('allowance', ['address', 'address']),
        function('transfer', ['address', 'uint256'], ['bool']),
        function('approve', ['address', 'uint256'], ['bool']),
        function('transferFrom', ['address', 'address', 'uint256'], ['bool']),
        event('Transfer', ['address', 'address', 'uint256']),
        event('Approval', ['address', 'address', 'uint256']),
    ]
