"""
Vehicle data providers: DVLA vehicle and driver enquiries, DVSA MOT history, Vehicle Data Global.
"""
from core.vehicles.dvla import DVLAClient
from core.vehicles.errors import VehicleApiError
from core.vehicles.mot_history import MOTHistoryClient
from core.vehicles.vehicle_data import VehicleDataClient

__all__ = ["DVLAClient", "MOTHistoryClient", "VehicleApiError", "VehicleDataClient"]
