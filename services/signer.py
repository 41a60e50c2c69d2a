"""Key derivation and transaction signing for the streaming account."""
from __future__ import annotations

import logging
from typing import Protocol

from cosmpy.aerial.wallet import LocalWallet
from cosmpy.protos.cosmos.base.v1beta1.coin_pb2 import Coin as ProtoCoin
from cosmpy.protos.cosmos.crypto.secp256k1.keys_pb2 import PubKey as ProtoPubKey
from cosmpy.protos.cosmos.tx.signing.v1beta1.signing_pb2 import SignMode
from cosmpy.protos.cosmos.tx.v1beta1.tx_pb2 import AuthInfo, Fee, ModeInfo, SignDoc, SignerInfo, TxBody, TxRaw
from google.protobuf.any_pb2 import Any as ProtoAny

from constants import BECH32_PREFIX

logger = logging.getLogger(__name__)

_VALID_WORD_COUNTS = {12, 15, 18, 21, 24}


class SigningError(Exception):
    """The mnemonic could not be turned into a key, or signing failed."""


class Signer(Protocol):
    @property
    def address(self) -> str: ...

    def sign(self, tx_body: TxBody, account_number: int, sequence: int) -> bytes: ...


class MnemonicSigner:
    """Signs in SIGN_MODE_DIRECT with the key at m/44'/118'/0'/0/0."""

    def __init__(
        self,
        mnemonic: str,
        *,
        chain_id: str,
        fee_denom: str,
        fee_amount: int,
        gas_limit: int,
        prefix: str = BECH32_PREFIX,
    ) -> None:
        try:
            self._wallet = LocalWallet.from_mnemonic(mnemonic, prefix=prefix)
        except Exception as exc:
            raise SigningError(f"Failed to generate account information: {exc}") from exc
        self._address = str(self._wallet.address())
        self.chain_id = chain_id
        self.fee_denom = fee_denom
        self.fee_amount = fee_amount
        self.gas_limit = gas_limit

    @property
    def address(self) -> str:
        return self._address

    def _signer_info(self, sequence: int) -> SignerInfo:
        public_key = ProtoAny()
        public_key.Pack(ProtoPubKey(key=self._wallet.public_key().public_key_bytes), type_url_prefix="/")
        return SignerInfo(
            public_key=public_key,
            mode_info=ModeInfo(single=ModeInfo.Single(mode=SignMode.SIGN_MODE_DIRECT)),
            sequence=sequence,
        )

    def sign(self, tx_body: TxBody, account_number: int, sequence: int) -> bytes:
        """Returns the serialized TxRaw ready for broadcasting."""
        auth_info = AuthInfo(
            signer_infos=[self._signer_info(sequence)],
            fee=Fee(
                amount=[ProtoCoin(denom=self.fee_denom, amount=str(self.fee_amount))],
                gas_limit=self.gas_limit,
            ),
        )
        body_bytes = tx_body.SerializeToString()
        auth_info_bytes = auth_info.SerializeToString()
        sign_doc = SignDoc(
            body_bytes=body_bytes,
            auth_info_bytes=auth_info_bytes,
            chain_id=self.chain_id,
            account_number=account_number,
        )
        try:
            signature = self._wallet.signer().sign(sign_doc.SerializeToString(), deterministic=True)
        except Exception as exc:
            raise SigningError(f"Failed to sign the transaction: {exc}") from exc
        return TxRaw(body_bytes=body_bytes, auth_info_bytes=auth_info_bytes, signatures=[signature]).SerializeToString()


def validate_mnemonic(phrase: str) -> bool:
    """Cheap check used by the interactive prompt before deriving a key."""
    words = phrase.split()
    if len(words) not in _VALID_WORD_COUNTS:
        return False
    try:
        LocalWallet.from_mnemonic(" ".join(words), prefix=BECH32_PREFIX)
    except Exception as exc:
        logger.debug("Mnemonic rejected: %s", exc)
        return False
    return True
