"""
Paymaster policies.

Each policy decides how gas for a UserOperation gets paid. ``attach`` runs
after gas estimation and before signing; it returns a new operation whose
only difference is ``paymaster_and_data``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .userop import UserOperation, UserOperationCall
from .userop_builder import build_erc20_approve_call_data, hex_to_bytes
from ...errors import SponsorshipDenied
from ...providers.paymaster import PaymasterProvider


logger = logging.getLogger(__name__)


class PaymasterPolicy(str, Enum):
    NONE = "NONE"
    VERIFYING_PAYMASTER = "VERIFYING_PAYMASTER"
    TOKEN_PAYMASTER = "TOKEN_PAYMASTER"


class PaymasterStrategy:
    """No paymaster: the sender's entry point deposit pays the prefund."""

    policy = PaymasterPolicy.NONE

    def prepare_calls(self, calls: Sequence[UserOperationCall]) -> List[UserOperationCall]:
        return list(calls)

    async def attach(self, user_op: UserOperation) -> UserOperation:
        if user_op.paymaster_and_data == "0x":
            return user_op
        return user_op.evolve(paymaster_and_data="0x")


class SponsoringPaymasterStrategy(PaymasterStrategy):
    """Negotiates ``paymasterAndData`` with the paymaster service."""

    policy = PaymasterPolicy.VERIFYING_PAYMASTER

    def __init__(self, paymaster: PaymasterProvider, entry_point: str, project_id: str = "") -> None:
        self.paymaster = paymaster
        self.entry_point = entry_point
        self.project_id = project_id

    def _context(self) -> Dict[str, Any]:
        context: Dict[str, Any] = {"policy": self.policy.value}
        if self.project_id:
            context["projectId"] = self.project_id
        return context

    async def attach(self, user_op: UserOperation) -> UserOperation:
        # Sponsor sees the draft without paymaster data or a real signature
        draft = user_op.evolve(paymaster_and_data="0x")
        try:
            paymaster_and_data = await self.paymaster.sponsor_user_operation(
                user_op=draft,
                entry_point=self.entry_point,
                context=self._context(),
            )
        except SponsorshipDenied as exc:
            exc.policy = self.policy.value
            raise

        if len(hex_to_bytes(paymaster_and_data)) < 20:
            raise SponsorshipDenied(
                f"Paymaster returned malformed paymasterAndData: {paymaster_and_data}",
                policy=self.policy.value,
            )
        logger.info(f"{self.policy.value} attached for {user_op.sender}")
        return user_op.evolve(paymaster_and_data=paymaster_and_data)


class TokenPaymasterStrategy(SponsoringPaymasterStrategy):
    """
    Gas paid in an ERC-20 token.

    When ``token_address``, ``paymaster_address`` and ``approve_amount`` are
    all set, an ``approve(paymaster, amount)`` call is prepended to every
    batch so the paymaster can pull the token during postOp.
    """

    policy = PaymasterPolicy.TOKEN_PAYMASTER

    def __init__(
        self,
        paymaster: PaymasterProvider,
        entry_point: str,
        gas_token: str,
        project_id: str = "",
        token_address: Optional[str] = None,
        paymaster_address: Optional[str] = None,
        approve_amount: Optional[int] = None,
    ) -> None:
        super().__init__(paymaster, entry_point, project_id)
        if not gas_token:
            raise ValueError("Token paymaster requires a gas token")
        self.gas_token = gas_token
        self.token_address = token_address
        self.paymaster_address = paymaster_address
        self.approve_amount = approve_amount

    def _context(self) -> Dict[str, Any]:
        context = super()._context()
        context["gasToken"] = self.gas_token
        return context

    def prepare_calls(self, calls: Sequence[UserOperationCall]) -> List[UserOperationCall]:
        if not (self.token_address and self.paymaster_address and self.approve_amount):
            return list(calls)
        approve = UserOperationCall(
            target=self.token_address,
            data=build_erc20_approve_call_data(self.paymaster_address, self.approve_amount),
        )
        return [approve, *calls]


StrategyBuilder = Callable[..., PaymasterStrategy]

PAYMASTER_STRATEGIES: Dict[PaymasterPolicy, StrategyBuilder] = {
    PaymasterPolicy.NONE: lambda **_: PaymasterStrategy(),
    PaymasterPolicy.VERIFYING_PAYMASTER: lambda paymaster, entry_point, project_id="", **_: (
        SponsoringPaymasterStrategy(paymaster, entry_point, project_id)
    ),
    PaymasterPolicy.TOKEN_PAYMASTER: lambda paymaster, entry_point, project_id="", **options: (
        TokenPaymasterStrategy(paymaster, entry_point, project_id=project_id, **options)
    ),
}


def build_paymaster_strategy(
    policy: PaymasterPolicy | str,
    paymaster: Optional[PaymasterProvider] = None,
    entry_point: str = "",
    project_id: str = "",
    **options: Any,
) -> PaymasterStrategy:
    policy = PaymasterPolicy(policy)
    if policy is not PaymasterPolicy.NONE and paymaster is None:
        raise ValueError(f"{policy.value} requires a paymaster provider")
    return PAYMASTER_STRATEGIES[policy](
        paymaster=paymaster,
        entry_point=entry_point,
        project_id=project_id,
        **options,
    )
