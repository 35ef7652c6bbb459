import argparse
import asyncio
import os
from typing import Dict, List, Optional

from backend.channels import InMemoryChannel
from backend.logging_config import configure_logging
from location.devices import SimulatedDevice
from location.models import LocationSample
from location.publisher import DriverLocationSharer, LocationPublisher
from location.source import LocationSource
from orders.models import DeliveryRequest, DeliveryStatus, DriverRef, Place
from tracking.policy import TrackingPolicy
from tracking.session import TrackingSession
from tracking.surface import FoliumMapSurface
from tracking.view import TrackingSnapshot

# Driver route through Casablanca: store (Maarif) -> customer (Gauthier)
DRIVER_PATH = [
    (33.5800, -7.6000),
    (33.5790, -7.5985),
    (33.5778, -7.5968),
    (33.5765, -7.5950),
    (33.5752, -7.5933),
    (33.5740, -7.5917),
    (33.5731, -7.5904),
]
STORE = Place(33.5800, -7.6000, "Marjane Maarif, Casablanca")
HOME = Place(33.5731, -7.5898, "Gauthier, Casablanca")

# (driver step reached, status the backend reports from then on)
STATUS_SCRIPT = [
    (0, DeliveryStatus.ACCEPTED),
    (1, DeliveryStatus.SHOPPING),
    (2, DeliveryStatus.DELIVERING),
    (len(DRIVER_PATH) - 1, DeliveryStatus.COMPLETED),
]


class MockBackendClient:
    """
    Stands in for BackendClient: one request whose status follows the
    driver's progress along the path.
    """

    def __init__(self, request_id: str, driver_id: str):
        self.request_id = request_id
        self.driver_id = driver_id
        self.status = DeliveryStatus.PENDING
        self.locations: Dict[str, LocationSample] = {}

    def advance(self, step: int) -> None:
        for reached, status in STATUS_SCRIPT:
            if step >= reached:
                self.status = status

    def get_request(self, user_id: str, request_id: str) -> Optional[DeliveryRequest]:
        if request_id != self.request_id:
            return None
        return DeliveryRequest(
            id=self.request_id,
            status=self.status,
            pickup_location=STORE,
            delivery_location=HOME,
            driver=None if self.status == DeliveryStatus.PENDING else DriverRef(self.driver_id),
            item="Groceries",
            store=STORE.address,
        )

    def update_user_location(self, user_id: str, sample: LocationSample) -> None:
        self.locations[user_id] = sample

    def get_user_location(self, user_id: str, requested_at=None) -> Optional[LocationSample]:
        return self.locations.get(user_id)


async def run_simulation(interval_s: float, output_path: str) -> None:
    print("=== STARTING LIVE TRACKING SIMULATION ===")

    request_id = "req-1"
    driver_id = "driver-1"
    customer_id = "customer-1"

    policy = TrackingPolicy(request_poll_interval_s=interval_s / 2, persist_interval_s=interval_s * 3)
    policy.validate()

    channel = InMemoryChannel()
    backend = MockBackendClient(request_id, driver_id)
    surface = FoliumMapSurface()
    history: List[TrackingSnapshot] = []

    def on_update(snapshot: TrackingSnapshot) -> None:
        history.append(snapshot)
        eta = f"{snapshot.eta_minutes} min" if snapshot.eta_minutes is not None else "--"
        print(f"  [{snapshot.status.value if snapshot.status else 'loading'}] {snapshot.headline} | ETA {eta}")

    device = SimulatedDevice(DRIVER_PATH, interval_s=interval_s)
    source = LocationSource(device, policy)
    publisher = LocationPublisher(driver_id, channel=channel, client=backend, delivery_id=request_id, policy=policy)

    session = TrackingSession(
        backend, customer_id, request_id,
        home=HOME, channel=channel, surface=surface, policy=policy, on_update=on_update,
    )

    async with session:
        # wait for the customer side to see the accepted request
        backend.advance(0)
        await asyncio.sleep(interval_s)

        async with DriverLocationSharer(source, publisher):
            for step in range(len(DRIVER_PATH)):
                backend.advance(step)
                await asyncio.sleep(interval_s)

        # let the last status poll land
        await asyncio.sleep(interval_s)
        surface.save(output_path)

    await channel.close()

    print("\n=== SIMULATION COMPLETE ===")
    print(f"Snapshots rendered: {len(history)}")
    print(f"Broadcasts sent: {publisher.published}, REST writes: {publisher.persisted}")
    if history:
        print(f"Final state:\n{history[-1].as_text()}")
    print(f"Map written to '{output_path}'.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate one live tracked delivery")
    parser.add_argument("--interval", type=float, default=0.5, help="seconds between GPS fixes")
    parser.add_argument("--verbose", action="store_true")
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    parser.add_argument("--output", default=os.path.join(base_dir, "tracking_map.html"))
    args = parser.parse_args()

    configure_logging("DEBUG" if args.verbose else "INFO", verbose=args.verbose)
    asyncio.run(run_simulation(args.interval, args.output))


if __name__ == "__main__":
    main()
