"""
instructions.py - Ordered instruction bundle for one swap attempt.

Order per direction (fee bypass = the submission path pays priority out-of-band):

    [compute unit price, compute unit limit]   unless fee bypass
    [create destination ATA (idempotent)]      buy only
    swap_base_in
    [close source account]                     sell_and_close only

Plain sell never closes the source account.
"""

from __future__ import annotations

import struct
from enum import Enum
from typing import List, Optional

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import CloseAccountParams, close_account, get_associated_token_address

from rayswap.errors import BuildError, UnsupportedDirection
from rayswap.pools.models import PoolKeys

SWAP_BASE_IN_DISCRIMINATOR = 9
CREATE_IDEMPOTENT_DISCRIMINATOR = 1


class SwapDirection(Enum):
    BUY = "buy"
    SELL = "sell"
    SELL_AND_CLOSE = "sell_and_close"

    @classmethod
    def from_code(cls, code: int) -> "SwapDirection":
        """0 = buy, 1 = sell, 11 = sell and close the source account.

        Only exact ints are accepted: bools, floats and numeric strings are rejected.
        """
        if isinstance(code, bool) or not isinstance(code, int) or code not in _DIRECTION_CODES:
            raise UnsupportedDirection(f"unsupported direction: {code!r}", {"direction": repr(code)})
        return _DIRECTION_CODES[code]


_DIRECTION_CODES = {
    0: SwapDirection.BUY,
    1: SwapDirection.SELL,
    11: SwapDirection.SELL_AND_CLOSE,
}


def derive_ata(owner: Pubkey, mint: Pubkey) -> Pubkey:
    try:
        return get_associated_token_address(owner, mint)
    except Exception as e:
        raise BuildError(
            f"associated token address derivation failed: {e}",
            {"owner": str(owner), "mint": str(mint)},
        ) from e


def create_ata_idempotent_ix(
    payer: Pubkey, owner: Pubkey, mint: Pubkey, ata: Optional[Pubkey] = None
) -> Instruction:
    """CreateIdempotent: succeeds whether or not the account exists.

    When `ata` is given it is the account created; otherwise it is derived from owner and mint.
    """
    if ata is None:
        ata = derive_ata(owner, mint)
    keys = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, bytes([CREATE_IDEMPOTENT_DISCRIMINATOR]), keys)


def swap_base_in_ix(
    pool_keys: PoolKeys,
    ata_in: Pubkey,
    ata_out: Pubkey,
    owner: Pubkey,
    amount_in: int,
    min_amount_out: int,
) -> Instruction:
    try:
        data = struct.pack("<BQQ", SWAP_BASE_IN_DISCRIMINATOR, amount_in, min_amount_out)
    except struct.error as e:
        raise BuildError(
            f"swap amounts out of u64 range: in={amount_in} min_out={min_amount_out}",
            {"pool": str(pool_keys.id)},
        ) from e

    keys = [
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=pool_keys.id, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=pool_keys.open_orders, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.target_orders, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.base_vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.quote_vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.market_program_id, is_signer=False, is_writable=False),
        AccountMeta(pubkey=pool_keys.market_id, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.market_bids, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.market_asks, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.market_event_queue, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.market_base_vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.market_quote_vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=pool_keys.market_authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=ata_in, is_signer=False, is_writable=True),
        AccountMeta(pubkey=ata_out, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=True, is_writable=False),
    ]
    return Instruction(pool_keys.program_id, data, keys)


class InstructionBuilder:
    def build(
        self,
        direction: SwapDirection,
        pool_keys: PoolKeys,
        ata_in: Pubkey,
        ata_out: Pubkey,
        wallet: Pubkey,
        output_mint: Pubkey,
        amount_in: int,
        min_amount_out: int,
        compute_unit_limit: int,
        compute_unit_price: int,
        use_fee_bypass: bool,
    ) -> List[Instruction]:
        instructions: List[Instruction] = []

        if not use_fee_bypass:
            instructions.append(set_compute_unit_price(compute_unit_price))
            instructions.append(set_compute_unit_limit(compute_unit_limit))

        if direction is SwapDirection.BUY:
            # ata_out is the account the swap credits, so it is the one that must exist
            instructions.append(create_ata_idempotent_ix(wallet, wallet, output_mint, ata=ata_out))

        instructions.append(swap_base_in_ix(pool_keys, ata_in, ata_out, wallet, amount_in, min_amount_out))

        if direction is SwapDirection.SELL_AND_CLOSE:
            instructions.append(
                close_account(
                    CloseAccountParams(
                        program_id=TOKEN_PROGRAM_ID,
                        account=ata_in,
                        dest=wallet,
                        owner=wallet,
                    )
                )
            )

        return instructions
