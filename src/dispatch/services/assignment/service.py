"""Machine assignment and fleet status updates."""

from __future__ import annotations

import logging
from dataclasses import replace

from ...errors import (
    NoMachineAvailableError,
    OrderStateConflictError,
    PartialAssignmentFailure,
    PersistenceError,
)
from ...models.domain import Machine, MachineStatus, OrderStatus
from ...persistence.base import FleetStore, OrderStore

logger = logging.getLogger(__name__)


def selection_key(machine: Machine) -> tuple:
    """Earliest registered machine first; id breaks timestamp ties."""
    return (machine.created_at, machine.id)


class AssignmentEngine:
    """Binds confirmed orders to idle machines.

    Selection is deterministic (see :func:`selection_key`) and every claim is a
    conditional update at the store, so concurrent requests, in this process
    or another, never book the same idle machine twice.
    """

    def __init__(self, fleet: FleetStore, orders: OrderStore) -> None:
        self.fleet = fleet
        self.orders = orders

    def list_machines(self) -> list[Machine]:
        return self.fleet.list_machines()

    def assign_order(self, order_id: str) -> Machine:
        order = self.orders.get_order(order_id)
        if order.machine_id is not None or order.status != OrderStatus.CONFIRMED:
            raise OrderStateConflictError(
                f"Order {order_id} is {order.status.value}"
                f"{' with machine ' + order.machine_id if order.machine_id else ''}; "
                "only confirmed, unassigned orders can be assigned."
            )

        candidates = sorted(self.fleet.list_machines_by_status(MachineStatus.IDLE), key=selection_key)
        if not candidates:
            raise NoMachineAvailableError(f"No idle machine available for order {order_id}.")

        machine = self._claim_first(candidates)
        if machine is None:
            raise NoMachineAvailableError(
                f"All {len(candidates)} idle machine(s) were claimed by other orders before {order_id}."
            )

        try:
            bound = self.orders.bind_machine(order_id, machine.id)
        except PersistenceError as exc:
            if self._bound_despite_error(order_id, machine, exc):
                return machine
            self._release(order_id, machine, cause=exc)
            raise

        if bound is None:
            self._release(order_id, machine)
            raise OrderStateConflictError(
                f"Order {order_id} changed state while machine {machine.id} was being assigned."
            )

        logger.info(f"Assigned machine {machine.id} ({machine.machine_type.value}) to order {order_id}")
        return machine

    def _claim_first(self, candidates: list[Machine]) -> Machine | None:
        for candidate in candidates:
            claimed = self.fleet.transition_machine_status(
                candidate.id, MachineStatus.IDLE, MachineStatus.IN_TRANSIT
            )
            if claimed is not None:
                return claimed
            logger.warning(f"Machine {candidate.id} was claimed concurrently; trying next candidate")
        return None

    def _bound_despite_error(self, order_id: str, machine: Machine, error: PersistenceError) -> bool:
        """Whether a bind that reported ``error`` was committed anyway.

        The write may have landed before the response was lost, so the order is
        read back before the machine is handed back to the idle pool. When the
        order cannot be read either, the outcome is unknown and the machine
        stays claimed.
        """
        try:
            order = self.orders.get_order(order_id)
        except PersistenceError as exc:
            logger.error(f"Could not tell whether order {order_id} was bound to machine {machine.id}: {exc}")
            raise PartialAssignmentFailure(
                f"Binding order {order_id} to machine {machine.id} failed ({error}) and the order "
                "could not be re-read; the machine was left claimed.",
                order_id=order_id,
                machine_id=machine.id,
            ) from exc
        if order.machine_id == machine.id and order.status == OrderStatus.IN_PROGRESS:
            logger.warning(f"Bind of order {order_id} to machine {machine.id} reported an error but was stored")
            return True
        return False

    def _release(self, order_id: str, machine: Machine, cause: Exception | None = None) -> None:
        """Hand a claimed machine back to the idle pool after the order bind failed."""
        try:
            released = self.fleet.transition_machine_status(
                machine.id, MachineStatus.IN_TRANSIT, MachineStatus.IDLE
            )
        except PersistenceError as exc:
            released = None
            cause = cause or exc
        if released is None:
            logger.error(
                f"Machine {machine.id} left IN_TRANSIT without an order after assigning {order_id} failed"
            )
            raise PartialAssignmentFailure(
                f"Machine {machine.id} was claimed for order {order_id} but the order was not "
                "updated and the machine could not be released.",
                order_id=order_id,
                machine_id=machine.id,
            ) from cause
        logger.warning(f"Released machine {machine.id} after order {order_id} could not be bound")

    def set_machine_status(
        self,
        machine_id: str,
        status: MachineStatus,
        latitude: float,
        longitude: float,
    ) -> Machine:
        """Overwrite status and position; the battery level is left untouched."""
        machine = self.fleet.get_machine(machine_id)
        updated = replace(machine, status=status, latitude=latitude, longitude=longitude)
        return self.fleet.update_machine(updated)
