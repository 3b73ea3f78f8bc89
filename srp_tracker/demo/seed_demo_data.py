# srp_tracker/demo/seed_demo_data.py

from srp_tracker.config.loader import AssetTypeEntry, load_settings
from srp_tracker.core.collaborators import Actor, Role, StaticCatalog
from srp_tracker.core.lifecycle import SubmissionPayload
from srp_tracker.service.api import build_service

settings = load_settings()
catalog = StaticCatalog({
    587: AssetTypeEntry(type_id=587, name="Rifter", category="Frigate", base_value=500000),
    24690: AssetTypeEntry(type_id=24690, name="Drake", category="Battlecruiser", base_value=45000000),
})
service = build_service(settings, catalog=catalog)

fc = Actor(user_id="fc-1", display_name="Fleet Commander", role=Role.FC)
pilot = Actor(user_id="pilot-1", display_name="Line Pilot")

fleet = service.register_fleet(
    fc, "Demo Roam", description="Faction warfare roam", location="Amamake"
).unwrap()

solo = service.submit_request(pilot, SubmissionPayload(
    asset_type_id=587,
    claimed_value=1200000,
    operation_type="solo",
    loss_description="Caught on a gate"
)).unwrap()

fleet_loss = service.submit_request(pilot, SubmissionPayload(
    asset_type_id=24690,
    claimed_value=60000000,
    operation_type="fleet",
    is_special_role=True,
    fleet_ref=fleet.id,
    loss_description="Primaried as logi"
)).unwrap()

service.review_request(fleet_loss.id, fc, "approve", payout=fleet_loss.estimated_payout).unwrap()
service.mark_paid(fleet_loss.id, fc).unwrap()
service.mark_processing(solo.id, fc).unwrap()

print("Demo SRP data inserted")
