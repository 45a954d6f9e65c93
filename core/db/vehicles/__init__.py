from core.db.vehicles.lookup_store import list_vehicle_lookups_for_user, log_vehicle_lookup

__all__ = ["list_vehicle_lookups_for_user", "log_vehicle_lookup"]
