"""
PyArgent - client-side authorization for Argent zkSync accounts

Builds, signs and submits zkSync EIP-712 transactions (Type 0x71) for
multi-signatory Argent accounts, predicts account addresses, prepares
outside (priority) executions and models the escape recovery rules.
"""

from .account import AddressPredictor, ArgentAccount, deploy_account, get_deployed_contracts
from .builder import TransactionBuilder, TransactionRequestBuilder
from .config import load_config, load_settings, save_config
from .eip712 import DigestComputer
from .errors import (
    AddressPredictionMismatch,
    ArgentError,
    ConfigError,
    DestinationRejected,
    EscapeOverrideForbidden,
    InsufficientSignatories,
    InvalidEscapeState,
    MaxEscapeAttemptsExceeded,
    SignerMismatch,
    TimestampWaitTimeout,
)
from .escape import EscapeStateMachine, Party, escape_status, wait_for_escape_status
from .infrastructure import (
    WalletDeployer,
    deploy_infrastructure,
    deploy_test_dapp,
    load_account_context,
)
from .models import (
    AccountContext,
    Call,
    Escape,
    EscapeStatus,
    EscapeType,
    PaymasterParams,
    TransactionRequest,
    general_paymaster_params,
)
from .outside import OutsideTransaction, OutsideTransactionBuilder
from .provider import ChainProvider, Web3ChainProvider, wait_for_timestamp
from .signatory import RANDOM, ZEROS, EphemeralRandom, RealKey, ZeroPlaceholder
from .signer import ArgentSigner
from .transaction import SignedEnvelope, decode_envelope

__version__ = "0.1.0"

__all__ = [
    # Signing
    "ArgentSigner",
    "DigestComputer",
    "RealKey",
    "ZeroPlaceholder",
    "EphemeralRandom",
    "ZEROS",
    "RANDOM",
    # Transactions
    "TransactionRequest",
    "TransactionRequestBuilder",
    "TransactionBuilder",
    "SignedEnvelope",
    "decode_envelope",
    "PaymasterParams",
    "general_paymaster_params",
    "Call",
    # Accounts
    "AccountContext",
    "AddressPredictor",
    "ArgentAccount",
    "deploy_account",
    "get_deployed_contracts",
    "WalletDeployer",
    "deploy_infrastructure",
    "deploy_test_dapp",
    "load_account_context",
    # Outside execution
    "OutsideTransaction",
    "OutsideTransactionBuilder",
    # Recovery
    "Escape",
    "EscapeStatus",
    "EscapeType",
    "EscapeStateMachine",
    "Party",
    "escape_status",
    "wait_for_escape_status",
    # Chain access
    "ChainProvider",
    "Web3ChainProvider",
    "wait_for_timestamp",
    # Configuration
    "load_settings",
    "load_config",
    "save_config",
    # Errors
    "ArgentError",
    "SignerMismatch",
    "InsufficientSignatories",
    "InvalidEscapeState",
    "EscapeOverrideForbidden",
    "MaxEscapeAttemptsExceeded",
    "AddressPredictionMismatch",
    "TimestampWaitTimeout",
    "DestinationRejected",
    "ConfigError",
]
