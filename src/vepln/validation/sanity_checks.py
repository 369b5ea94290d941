"""Sanity checks and validation for simulation inputs and engine state."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config.schema import Config
from ..engine.fixed_point import to_wei
from ..engine.ledger import TokenType


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "input", "conservation", "custody"
    message: str
    details: Optional[str] = None


class SanityChecker:
    """Run sanity checks on configuration and simulation state."""

    def __init__(self, config: Config):
        """Initialize with configuration."""
        self.config = config

    def check_config_inputs(self) -> List[ValidationWarning]:
        """
        Check configuration inputs for implausible values.

        Returns:
            List of validation warnings
        """
        warnings = []
        initial_supply = to_wei(self.config.token.initial_supply, self.config.token.decimals)
        segments = self.config.issuance_schedule.segments

        # Issuance curve should start at or above the initial supply
        if segments[0].offset_y < initial_supply:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Issuance curve starts below the initial supply; no rewards until it catches up",
                details=f"offset_y={segments[0].offset_y}, initial supply={initial_supply}"
            ))

        # A decreasing target supply would make every reward rate zero
        for prev, seg in zip(segments, segments[1:]):
            if seg.offset_y < prev.offset_y:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="input",
                    message=f"Issuance target decreases at segment starting {seg.offset_x}",
                    details=f"{prev.offset_y} -> {seg.offset_y}"
                ))

        # Benchmark fully in the stable asset never moves
        if self.config.benchmark.weights[0] == 100:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Benchmark is fully allocated to the stable asset",
                details="Benchmark-adjusted returns equal raw returns"
            ))

        if self.config.fees.delegator_fee_percent > 50:
            warnings.append(ValidationWarning(
                severity="warning",
                category="bounds",
                message=f"Delegator fee of {self.config.fees.delegator_fee_percent}% is unusually high"
            ))

        if self.config.assets.max_price_change_permille == 0:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Prices never move; portfolios will show no returns"
            ))

        return warnings

    def check_manager(self, manager) -> List[ValidationWarning]:
        """
        Check live engine state for broken invariants.

        Args:
            manager: SimulationManager

        Returns:
            List of validation warnings
        """
        warnings = []

        # Ledger conservation
        for ledger in (manager.base_token, manager.derivative_token):
            is_valid, error_msg = ledger.validate_conservation()
            if not is_valid:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="conservation",
                    message=f"{ledger.name} conservation law violated",
                    details=error_msg
                ))

        # Inflation reserve
        info = manager.locking.inflation_info
        if info.reserved_amount < 0:
            warnings.append(ValidationWarning(
                severity="error",
                category="bounds",
                message="Inflation reserve went negative",
                details=f"Value: {info.reserved_amount}"
            ))

        # Lock records
        locked_total = 0
        for address, lock in manager.locking.locks.items():
            is_valid, error_msg = lock.validate()
            if not is_valid:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="locks",
                    message=f"Lock detail mismatch for {address}",
                    details=error_msg
                ))
            locked_total += lock.amount

        pool_balance = manager.base_token.balance_of(manager.locking.address)
        if pool_balance != locked_total:
            warnings.append(ValidationWarning(
                severity="error",
                category="custody",
                message="Lock pool balance does not match locked amounts",
                details=f"pool={pool_balance}, locked={locked_total}"
            ))

        # Delegation custody
        all_portfolios = manager.portfolios.all_portfolios()
        for token_type, ledger in ((TokenType.BASE, manager.base_token),
                                   (TokenType.DERIVATIVE, manager.derivative_token)):
            deposited = sum(sum(p.deposits[token_type].values()) for p in all_portfolios)
            custody = ledger.balance_of(manager.address)
            if custody != deposited:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="custody",
                    message=f"{ledger.name} custody balance does not match {token_type.value} deposits",
                    details=f"custody={custody}, deposits={deposited}"
                ))

        total_deposited = sum(p.total_deposited for p in all_portfolios)
        if total_deposited != manager.portfolios.get_total_delegated():
            warnings.append(ValidationWarning(
                severity="error",
                category="custody",
                message="Total delegated does not match portfolio deposits",
                details=f"delegated={manager.portfolios.get_total_delegated()}, deposits={total_deposited}"
            ))

        return warnings

    def check_snapshot(self, snapshot: Dict[str, Any]) -> List[ValidationWarning]:
        """Check a recorded snapshot for conservation and reserve bounds."""
        warnings = []
        for prefix in ("base", "derivative"):
            balances = snapshot[f"{prefix}_balances"]
            supply = snapshot[f"{prefix}_total_supply"]
            if sum(balances.values()) != supply:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="conservation",
                    message=f"{prefix} balances do not sum to supply in round {snapshot['round']}",
                    details=f"sum={sum(balances.values())}, supply={supply}"
                ))
            negative = [a for a, b in balances.items() if b < 0]
            if negative:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="bounds",
                    message=f"Negative {prefix} balance in round {snapshot['round']}",
                    details=", ".join(negative)
                ))
        if snapshot["reserved_amount"] < 0:
            warnings.append(ValidationWarning(
                severity="error",
                category="bounds",
                message=f"Inflation reserve negative in round {snapshot['round']}"
            ))
        return warnings


def validate_simulation_results(config: Config, result) -> List[ValidationWarning]:
    """
    Validate complete simulation results.

    Args:
        config: Simulation configuration
        result: SimulationResult

    Returns:
        List of all validation warnings
    """
    checker = SanityChecker(config)
    warnings = []

    # Check config first
    warnings.extend(checker.check_config_inputs())

    for snapshot in result.snapshots:
        warnings.extend(checker.check_snapshot(snapshot))
    warnings.extend(checker.check_snapshot(result.final_snapshot))

    for error in result.errors:
        warnings.append(ValidationWarning(
            severity="error",
            category="round",
            message="Round failed",
            details=error
        ))

    return warnings
