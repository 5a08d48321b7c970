"""
Background maintenance: escrow auto-release, stale call sweep and
subscription expiry.
"""
import asyncio
import logging

from ..config import settings
from ..database import session_scope
from .booking_service import BookingService
from .call_service import CallService
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


class MaintenanceService:
    @staticmethod
    async def run_once() -> dict:
        """Run every maintenance job once; a failing job does not block the others."""
        summary = {"auto_released": 0, "calls": {"missed": 0, "ended": 0}, "subscriptions_expired": 0}

        try:
            async with session_scope() as db:
                results = await BookingService.process_auto_release(db)
                summary["auto_released"] = sum(1 for r in results if r["success"])
        except Exception as e:
            logger.error(f"Error releasing bookings: {e}")

        try:
            async with session_scope() as db:
                summary["calls"] = await CallService.sweep_stale_calls(db)
        except Exception as e:
            logger.error(f"Error sweeping calls: {e}")

        try:
            async with session_scope() as db:
                summary["subscriptions_expired"] = await SubscriptionService.expire_subscriptions(db)
        except Exception as e:
            logger.error(f"Error expiring subscriptions: {e}")

        return summary

    @staticmethod
    async def start_scheduler():
        """Start the background maintenance scheduler."""
        logger.info("Starting maintenance scheduler...")

        while True:
            try:
                await MaintenanceService.run_once()
                await asyncio.sleep(settings.maintenance_interval_seconds)
            except asyncio.CancelledError:
                logger.info("Maintenance scheduler stopped")
                raise
            except Exception as e:
                logger.error(f"Error in maintenance scheduler: {e}")
                # Wait a bit before retrying
                await asyncio.sleep(60)
