"""Generic transaction fulfillment shared by orders and donation claims.

A ``FulfillmentPolicy`` captures everything that differs between the two
transaction kinds (status members, listing outcomes, who may deliver, who
pays). ``FulfillmentMachine`` implements pickup authorization, delivery
completion, cancellation and delivery failure once against that policy.

Every mutating operation runs in the caller's session and commits once.
Notifications are collected while the transition runs and dispatched only
after the commit succeeds.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from libs.common.logging import get_logger
from services.fulfillment_service.errors import (
    AlreadyCompleted,
    AuthorizationViolation,
    CodeMismatch,
    InvalidDeliveryState,
    NotAssignedPersonnel,
    NotFound,
    PreconditionViolation,
    ResourceConflict,
    ValidationFailure,
)
from services.fulfillment_service.models import (
    Delivery,
    DeliveryPersonnelRef,
    DeliveryPersonnelType,
    DeliveryStatus,
    DeliveryType,
    ListingStatus,
    NotificationType,
    OwnerKind,
    OwnerRef,
    PaymentStatus,
)
from services.fulfillment_service.services import (
    delivery_coordinator,
    listing_ledger,
    pickup_codes,
)
from services.fulfillment_service.services.notifications import (
    NotificationDispatcher,
    PendingNotification,
    dispatch_after_commit,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)

DELIVERY_CANCELLED_REASON = "cancelled"


@dataclass(frozen=True)
class FulfillmentPolicy:
    label: str
    model: type
    owner_kind: OwnerKind
    pending: Enum
    ready: Enum
    completed: Enum
    cancelled: Enum
    # Claims must be approved before pickup; orders confirm implicitly
    requires_approval: bool
    listing_reserved: ListingStatus
    listing_final: ListingStatus
    personnel_type: DeliveryPersonnelType
    notification_type: NotificationType
    counterparty_attr: str
    provider_attr: str
    counterparty_role: str
    provider_role: str
    tracks_payment: bool

    @property
    def pickup_statuses(self) -> frozenset:
        if self.requires_approval:
            return frozenset({self.ready})
        return frozenset({self.pending, self.ready})

    @property
    def cancellable_statuses(self) -> frozenset:
        return frozenset({self.pending, self.ready})


class FulfillmentMachine:
    def __init__(self, policy: FulfillmentPolicy):
        self.policy = policy

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def provider_of(self, transaction) -> str:
        return getattr(transaction, self.policy.provider_attr)

    def counterparty_of(self, transaction) -> str:
        return getattr(transaction, self.policy.counterparty_attr)

    def describe(self, transaction, sentence_start: bool = False) -> str:
        label = self.policy.label
        if sentence_start:
            label = label[:1].upper() + label[1:]
        return f'{label} #{transaction.id} for "{transaction.listing.title}"'

    def notice(
        self,
        transaction,
        recipient_auth_id: str,
        message: str,
        notification_type: Optional[NotificationType] = None,
    ) -> PendingNotification:
        return PendingNotification(
            notification_type=notification_type or self.policy.notification_type,
            message=message,
            reference_id=str(transaction.id),
            recipient_auth_id=recipient_auth_id,
        )

    async def load(self, db: AsyncSession, transaction_id: uuid.UUID):
        transaction = await db.get(self.policy.model, transaction_id)
        if transaction is None:
            raise NotFound(f"{self.policy.label.capitalize()} not found")
        return transaction

    async def commit(self, db: AsyncSession, transaction) -> None:
        """Commit the transition, translating a lost version race."""
        transaction_id = transaction.id
        try:
            await db.commit()
        except StaleDataError:
            await db.rollback()
            fresh = await db.get(self.policy.model, transaction_id)
            current = fresh.status if fresh is not None else None
            logger.info(
                "Concurrent update on %s %s (now %s)",
                self.policy.label,
                transaction_id,
                current,
            )
            if current == self.policy.completed:
                raise AlreadyCompleted(current_state=current)
            raise ResourceConflict(current_state=current)
        await db.refresh(transaction)

    def check_not_completed(self, transaction) -> None:
        if transaction.status == self.policy.completed:
            raise AlreadyCompleted(current_state=transaction.status)

    async def assigned_delivery(
        self, db: AsyncSession, transaction, personnel_auth_id: str
    ) -> Delivery:
        delivery = await delivery_coordinator.get_for_owner(
            db, OwnerRef.of(transaction)
        )
        if delivery is None or delivery.personnel_auth_id != personnel_auth_id:
            raise NotAssignedPersonnel()
        return delivery

    async def reserve_listing(
        self, db: AsyncSession, listing_id: uuid.UUID, actor_auth_id: str
    ) -> listing_ledger.Reservation:
        return await listing_ledger.reserve(
            db,
            listing_id,
            actor_auth_id,
            for_donation=self.policy.listing_reserved == ListingStatus.CLAIMED,
        )

    async def find_courier(
        self, db: AsyncSession, organization_auth_id: Optional[str] = None
    ) -> DeliveryPersonnelRef:
        """Pick the delivery candidate before anything is written."""
        candidate = await delivery_coordinator.assign_candidate(
            db, self.policy.personnel_type, organization_auth_id
        )
        if candidate is None:
            raise ValidationFailure("No delivery personnel are available right now")
        return candidate

    async def schedule_delivery(
        self, db: AsyncSession, transaction, courier: DeliveryPersonnelRef
    ) -> Delivery:
        return await delivery_coordinator.schedule(
            db,
            OwnerRef.of(transaction),
            self.policy.personnel_type,
            courier.auth_id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_for_actor(
        self, db: AsyncSession, *, transaction_id: uuid.UUID, actor_auth_id: str
    ):
        """Fetch a transaction visible to its two parties and its courier."""
        transaction = await self.load(db, transaction_id)
        if actor_auth_id in (
            self.provider_of(transaction),
            self.counterparty_of(transaction),
        ):
            return transaction

        delivery = await delivery_coordinator.get_for_owner(
            db, OwnerRef.of(transaction)
        )
        if delivery is not None and delivery.personnel_auth_id == actor_auth_id:
            return transaction
        raise AuthorizationViolation(
            f"You are not a party to this {self.policy.label}"
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def authorize_pickup(
        self,
        db: AsyncSession,
        *,
        transaction_id: uuid.UUID,
        provider_auth_id: str,
        pickup_code: str,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        """Hand the goods over after the presented code checks out.

        SELF_PICKUP completes the transaction. HOME_DELIVERY puts the paired
        delivery in transit and confirms a still-pending order.
        """
        policy = self.policy
        if not pickup_codes.is_well_formed(pickup_code):
            raise ValidationFailure("Pickup code must be 8 letters or digits")

        transaction = await self.load(db, transaction_id)
        if self.provider_of(transaction) != provider_auth_id:
            raise AuthorizationViolation(
                f"Only the {policy.provider_role} can authorize pickup"
            )
        self.check_not_completed(transaction)
        if transaction.status not in policy.pickup_statuses:
            raise PreconditionViolation(
                f"Pickup cannot be authorized for a {transaction.status.value} {policy.label}",
                current_state=transaction.status,
            )

        owner = OwnerRef.of(transaction)
        if not await pickup_codes.verify(db, owner, pickup_code):
            logger.warning("Pickup code mismatch for %s", owner)
            raise CodeMismatch()

        notifications = []
        if transaction.delivery_type == DeliveryType.SELF_PICKUP:
            transaction.status = policy.completed
            if policy.tracks_payment:
                transaction.payment_status = PaymentStatus.PAID
            await listing_ledger.finalize(db, transaction.listing_id, policy.listing_final)
            notifications.append(
                self.notice(
                    transaction,
                    self.counterparty_of(transaction),
                    f"Your {self.describe(transaction)} has been picked up and completed.",
                )
            )
            notifications.append(
                self.notice(
                    transaction,
                    self.provider_of(transaction),
                    f"{self.describe(transaction, sentence_start=True)} was handed over and is complete.",
                )
            )
        else:
            delivery = await delivery_coordinator.get_for_owner(db, owner)
            if delivery is None:
                raise InvalidDeliveryState("No delivery is scheduled for this transaction")
            if delivery.status != DeliveryStatus.SCHEDULED:
                raise InvalidDeliveryState(
                    "Delivery has already left the pickup point",
                    current_state=delivery.status,
                )
            await delivery_coordinator.advance(
                db, delivery.id, DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT
            )
            if transaction.status == policy.pending:
                transaction.status = policy.ready
            notifications.append(
                self.notice(
                    transaction,
                    self.counterparty_of(transaction),
                    f"Your {self.describe(transaction)} has been picked up and is on the way.",
                    NotificationType.DELIVERY_UPDATE,
                )
            )

        await self.commit(db, transaction)
        logger.info(
            "Pickup authorized for %s (status=%s)", owner, transaction.status.value
        )

        await dispatch_after_commit(notifier, notifications)
        return transaction

    async def complete_delivery(
        self,
        db: AsyncSession,
        *,
        transaction_id: uuid.UUID,
        personnel_auth_id: str,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        """Close an in-transit delivery and complete its transaction."""
        policy = self.policy
        transaction = await self.load(db, transaction_id)
        delivery = await self.assigned_delivery(db, transaction, personnel_auth_id)

        self.check_not_completed(transaction)
        if transaction.status != policy.ready:
            raise PreconditionViolation(
                f"Delivery cannot complete a {transaction.status.value} {policy.label}",
                current_state=transaction.status,
            )
        if delivery.status != DeliveryStatus.IN_TRANSIT:
            raise InvalidDeliveryState(
                "Delivery is not in transit", current_state=delivery.status
            )

        await delivery_coordinator.advance(
            db, delivery.id, DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED
        )
        transaction.status = policy.completed
        if policy.tracks_payment:
            transaction.payment_status = PaymentStatus.PAID
        await listing_ledger.finalize(db, transaction.listing_id, policy.listing_final)

        notifications = [
            self.notice(
                transaction,
                self.counterparty_of(transaction),
                f"Your {self.describe(transaction)} has been delivered successfully.",
                NotificationType.DELIVERY_UPDATE,
            ),
            self.notice(
                transaction,
                self.provider_of(transaction),
                f"{self.describe(transaction, sentence_start=True)} was delivered successfully.",
                NotificationType.DELIVERY_UPDATE,
            ),
        ]

        await self.commit(db, transaction)
        logger.info(
            "Delivery %s completed %s %s", delivery.id, policy.label, transaction.id
        )

        await dispatch_after_commit(notifier, notifications)
        return transaction

    async def cancel(
        self,
        db: AsyncSession,
        *,
        transaction_id: uuid.UUID,
        actor_auth_id: str,
        reason: Optional[str] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        """Cancel before the goods leave the provider and release the listing."""
        policy = self.policy
        transaction = await self.load(db, transaction_id)

        provider = self.provider_of(transaction)
        counterparty = self.counterparty_of(transaction)
        if actor_auth_id not in (provider, counterparty):
            raise AuthorizationViolation(
                f"Only the {policy.provider_role} or {policy.counterparty_role} can cancel"
            )
        self.check_not_completed(transaction)
        if transaction.status not in policy.cancellable_statuses:
            raise PreconditionViolation(
                f"A {transaction.status.value} {policy.label} cannot be cancelled",
                current_state=transaction.status,
            )

        delivery = await delivery_coordinator.get_for_owner(
            db, OwnerRef.of(transaction)
        )
        if delivery is not None and delivery.status != DeliveryStatus.SCHEDULED:
            raise InvalidDeliveryState(
                "Cannot cancel after pickup", current_state=delivery.status
            )
        if delivery is not None:
            await delivery_coordinator.mark_failed(
                db, delivery.id, DELIVERY_CANCELLED_REASON
            )

        transaction.status = policy.cancelled
        transaction.cancellation_reason = reason
        await listing_ledger.release(db, transaction.listing_id)

        role = policy.provider_role if actor_auth_id == provider else policy.counterparty_role
        message = f"{self.describe(transaction, sentence_start=True)} has been cancelled by the {role}."
        if reason:
            message = f"{message} Reason: {reason}"
        other_party = counterparty if actor_auth_id == provider else provider
        notifications = [self.notice(transaction, other_party, message)]
        if delivery is not None:
            notifications.append(
                self.notice(
                    transaction,
                    delivery.personnel_auth_id,
                    message,
                    NotificationType.DELIVERY_UPDATE,
                )
            )

        await self.commit(db, transaction)
        logger.info(
            "%s %s cancelled by %s", policy.label, transaction.id, actor_auth_id
        )

        await dispatch_after_commit(notifier, notifications)
        return transaction

    async def report_delivery_failure(
        self,
        db: AsyncSession,
        *,
        transaction_id: uuid.UUID,
        personnel_auth_id: str,
        reason: str,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        """Fail the delivery and cancel the transaction.

        The listing goes back to ACTIVE if the goods never left the provider,
        otherwise it is finalized CANCELLED.
        """
        policy = self.policy
        transaction = await self.load(db, transaction_id)
        delivery = await self.assigned_delivery(db, transaction, personnel_auth_id)

        self.check_not_completed(transaction)
        if transaction.status not in policy.cancellable_statuses:
            raise PreconditionViolation(
                f"A {transaction.status.value} {policy.label} has no active delivery",
                current_state=transaction.status,
            )

        goods_in_transit = delivery.status == DeliveryStatus.IN_TRANSIT
        await delivery_coordinator.mark_failed(db, delivery.id, reason)

        transaction.status = policy.cancelled
        transaction.cancellation_reason = f"Delivery failed: {reason}"
        if policy.tracks_payment:
            transaction.payment_status = PaymentStatus.FAILED

        if goods_in_transit:
            await listing_ledger.finalize(
                db, transaction.listing_id, ListingStatus.CANCELLED
            )
        else:
            await listing_ledger.release(db, transaction.listing_id)

        message = f"Delivery failed for {self.describe(transaction)}. Reason: {reason}"
        notifications = [
            self.notice(
                transaction,
                recipient,
                message,
                NotificationType.DELIVERY_UPDATE,
            )
            for recipient in (
                self.counterparty_of(transaction),
                self.provider_of(transaction),
            )
        ]

        await self.commit(db, transaction)
        logger.info(
            "Delivery %s failed; %s %s cancelled",
            delivery.id,
            policy.label,
            transaction.id,
        )

        await dispatch_after_commit(notifier, notifications)
        return transaction
