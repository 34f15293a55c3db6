"""
Policy tables shared across the analyzer.

Known-malicious addresses, detector name tables, opcode markers and scoring
weights. Every table is an immutable structure built once at import time
and injected into the components that need it.

File: scam_analyzer/shared/constants.py
"""

from types import MappingProxyType


# =============================================================================
# VERSION & ADVISORIES
# =============================================================================

ANALYSIS_VERSION = "1.0.0"

EDUCATIONAL_WARNING = (
    "This analysis is for educational and security research purposes only. "
    "Never interact with or send funds to analyzed contracts."
)

MALICIOUS_ADDRESS_WARNING = (
    "CRITICAL WARNING: This contract address ({address}) is known to be "
    "malicious. Never interact with or send funds to this contract."
)

INVALID_ADDRESS_MESSAGE = "Invalid Ethereum address format"


# =============================================================================
# ADDRESSES
# =============================================================================

ADDRESS_PATTERN = r'0x[0-9a-fA-F]{40}'
BYTECODE_PATTERN = r'0x[0-9a-fA-F]*'
MAX_BYTECODE_HEX_LENGTH = 50_000
MAX_CONTRACT_NAME_LENGTH = 100

KNOWN_MALICIOUS_ADDRESSES = frozenset({
    '0xacba164135904dc63c5418b57ff87efd341d7c80',
    '0xa995507632b358ba63f8a39616930f8a696bfd8d',
    '0xd66fd225dbf7fd3c9f00220a455d05efccb1cbf0',
    '0x8270500f6a22c5fc8b78eecc24dd20de85838149',
    '0x78ec1a6d4028a88b179247291993c9dcd14be952',
    '0x54cb07d537d75e0cf1b1e3870201fa20e8873d8a',
    '0x26a7a3ce145d5c9904c5dd20b47b349db5f06420',
})


# =============================================================================
# CACHE DEFAULTS
# =============================================================================

BYTECODE_CACHE_TTL_SECONDS = 10 * 60
BYTECODE_CACHE_MAX_ENTRIES = 1000
# Distinct bytecode sources an orchestrator keeps a cache for
MAX_SOURCE_CACHES = 16
BATCH_CONCURRENCY = 5
ANALYSIS_TIMEOUT_SECONDS = 10.0


# =============================================================================
# PROXY TEMPLATES
# =============================================================================

# Byte sequences matched as exact subsequences of runtime or creation code
PROXY_TEMPLATES = MappingProxyType({
    'eip1167_runtime': '363d3d373d3d3d363d73',
    'eip1167_creation': '3d602d80600a3d3981f3363d3d373d3d3d363d73',
    'eip1967_implementation_slot': '360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc',
    'eip1822_proxiable_uuid': 'c5f16f0fcc639fa48a6947836d9850f504798523bf8c9a3a87d5876cf622bcf7',
    'delegate_forwarder': '3d3d3d3d363d3d37363d73',
})


# =============================================================================
# FAKE BALANCE TABLES
# =============================================================================

BALANCE_FUNCTION_NAMES = (
    'balanceOf', 'balance', 'getBalance', 'userBalance', 'accountBalance',
    'tokenBalance', 'availableBalance', 'totalBalance', 'checkBalance',
    'myBalance', 'walletBalance', 'stakedBalance', 'rewardBalance',
    'claimableBalance', 'pendingBalance',
)

SUSPICIOUS_BALANCE_TOKENS = (
    'timestamp', 'block', 'now', 'time', 'blockhash', 'difficulty',
    'number', 'coinbase', 'gaslimit', 'random', 'seed',
)

# Canonical ERC-20 parameter shapes; 'uint' matches any unsigned width
ERC20_SIGNATURES = MappingProxyType({
    'totalsupply': (),
    'balanceof': ('address',),
    'allowance': ('address', 'address'),
    'transfer': ('address', 'uint'),
    'approve': ('address', 'uint'),
    'transferfrom': ('address', 'address', 'uint'),
})

UINT256_RETURN_FUNCTIONS = ('balanceof', 'totalsupply')

FAKE_BALANCE_WEIGHTS = MappingProxyType({
    'timestamp_based': 0.4,
    'improper_erc20': 0.3,
    'non_deterministic': 0.2,
})


# =============================================================================
# NON-FUNCTIONAL TRANSFER TABLES
# =============================================================================

TRANSFER_FUNCTION_NAMES = (
    'transfer', 'transferFrom', 'safeTransfer', 'safeTransferFrom', 'send',
    'sendFrom', 'move', 'moveFrom', 'withdraw', 'deposit', 'swap', 'exchange',
)

TRANSFER_EVENT_NAMES = (
    'Transfer', 'TransferFrom', 'Sent', 'Received', 'Deposited', 'Withdrawn',
    'Swapped', 'Exchanged',
)

ERC20_STATE_FUNCTIONS = (
    'transfer', 'transferfrom', 'approve', 'increaseallowance', 'decreaseallowance',
)

PLACEHOLDER_NAME_TOKENS = ('fake', 'mock', 'dummy', 'test', 'example')

NON_FUNCTIONAL_TRANSFER_WEIGHTS = MappingProxyType({
    'non_functional': 0.4,
    'orphaned_events': 0.3,
    'view_transfers': 0.5,
})


# =============================================================================
# DECEPTIVE EVENT TABLES
# =============================================================================

DECEPTIVE_EVENT_SIGNATURES = (
    'Transfer(address,address,uint256)',
    'Approval(address,address,uint256)',
    'Success(bool)',
    'Completed(bool)',
    'Confirmed(bool)',
    'Claimed(address,uint256)',
    'Rewarded(address,uint256)',
    'Airdropped(address,uint256)',
)

DECEPTIVE_FUNCTION_PATTERNS = (
    'transfer', 'approve', 'claim', 'reward', 'airdrop', 'withdraw', 'deposit',
)

# Event names whose emitters do not share the event's name
EVENT_EMITTER_ALIASES = MappingProxyType({
    'approval': ('approve', 'increaseallowance', 'decreaseallowance', 'permit'),
    'transfer': ('transfer', 'transferfrom', 'mint', 'burn'),
})

STANDARD_EVENT_SHAPES = MappingProxyType({
    'Transfer': ('address', 'address', 'uint'),
    'Approval': ('address', 'address', 'uint'),
})

DECEPTIVE_EVENT_WEIGHTS = MappingProxyType({
    'deceptive_events': 1.0,
    'silent_functions': 1.0,
    'misordered_events': 1.0,
})


# =============================================================================
# HIDDEN REDIRECTION TABLES
# =============================================================================

OPCODE_PUSH1 = 0x60
OPCODE_PUSH20 = 0x73
OPCODE_PUSH32 = 0x7f
OPCODE_JUMPI = 0x57
OPCODE_SSTORE = 0x55
OPCODE_SELFDESTRUCT = 0xff
OPCODE_LOGS = frozenset({0xa0, 0xa1, 0xa2, 0xa3, 0xa4})

CALL_OPCODES = MappingProxyType({
    0xf1: 'CALL',
    0xf2: 'CALLCODE',
    0xf4: 'DELEGATECALL',
    0xfa: 'STATICCALL',
})

# Instructions scanned backwards from a call for a hardcoded target
CALL_LOOKBACK_INSTRUCTIONS = 8

SUSPICIOUS_ADDRESS_MARKERS = (
    '000000000000000000000000000000000000dead',
    '0000000000000000000000000000000000000000',
    'deadbeef',
    'cafebabe',
    '1337',
)

REDIRECT_FUNCTION_TOKENS = (
    'setfeereceiver', 'setfeewallet', 'settaxwallet', 'setmarketingwallet',
    'setdevwallet', 'settreasury', 'setrouter', 'updaterecipient',
    'setbeneficiary', 'redirect', 'forward', 'setcollector',
)

HIDDEN_REDIRECTION_WEIGHTS = MappingProxyType({
    'call': 0.3,
    'selfdestruct': 0.4,
    'suspicious_address': 0.1,
    'redirect_setter': 0.2,
})


# =============================================================================
# RISK SCORING
# =============================================================================

PATTERN_WEIGHTS = MappingProxyType({
    'deceptive-events': 0.25,
    'hidden-redirection': 0.35,
    'fake-balance': 0.20,
    'non-functional-transfer': 0.30,
})

SEVERITY_MULTIPLIERS = MappingProxyType({
    'low': 0.8,
    'medium': 1.0,
    'high': 1.2,
    'critical': 1.5,
})

RISK_THRESHOLDS = MappingProxyType({
    'medium': 0.25,
    'high': 0.5,
    'critical': 0.75,
})

DANGEROUS_COMBINATIONS = (
    ('hidden-redirection', 'deceptive-events'),
    ('fake-balance', 'non-functional-transfer'),
    ('deceptive-events', 'non-functional-transfer'),
)

MULTI_PATTERN_BONUS = 0.1
COMBINATION_BONUS = 0.15
CORROBORATION_BONUS = 0.05
MAX_BONUS = 0.3

LOW_CONFIDENCE_THRESHOLD = 0.4
LOW_CONFIDENCE_DISCOUNT = 0.25
THIN_EVIDENCE_THRESHOLD = 2
THIN_EVIDENCE_DISCOUNT = 0.15
MAX_PENALTY = 0.2
