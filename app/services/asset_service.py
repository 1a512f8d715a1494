from decimal import Decimal, InvalidOperation

from app.errors import AppError, NotFound
from app.extensions import db
from app.models import Asset, Room


class AssetService:
    @staticmethod
    def create_asset(operator_id, payload):
        name = (payload.get("name") or "").strip()
        if not name:
            raise AppError("Asset name is required.", 400)

        rooms = payload.get("rooms") or []
        if not isinstance(rooms, list):
            raise AppError("Rooms must be a list.", 400)

        asset = Asset(
            name=name,
            address=(payload.get("address") or "").strip() or None,
            created_by=operator_id,
        )
        for index, raw in enumerate(rooms, start=1):
            room_name = (str((raw or {}).get("name") or "")).strip() or f"Room {index}"
            price = (raw or {}).get("price")
            if price is not None:
                try:
                    price = Decimal(str(price))
                    if price <= 0:
                        raise ValueError
                except (InvalidOperation, ValueError) as exc:
                    raise AppError(f"Invalid price for room '{room_name}'.", 400) from exc
            asset.rooms.append(Room(name=room_name, price=price))

        db.session.add(asset)
        db.session.commit()
        return asset

    @staticmethod
    def get_asset(asset_id):
        asset = db.session.get(Asset, asset_id)
        if not asset:
            raise NotFound(f"Asset with ID {asset_id} not found.")
        return asset
