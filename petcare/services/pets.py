from collections import defaultdict
from typing import Any, Dict

from ..db import active
from ..schemas.pet import PetCreate, PetUpdate
from .registry import OwnedRegistry


class PetRegistry(OwnedRegistry):
    collection_name = "pets"
    owner_field = "owner_id"
    photo_field = "photos"
    replace_flags = ("replace_photos",)
    resource_name = "pet"
    create_schema = PetCreate
    update_schema = PetUpdate

    async def stats(self, owner_id: str) -> Dict[str, Any]:
        """Número de mascotas activas y desglose por especie (edad media)."""
        groups: Dict[str, list] = defaultdict(list)
        async for pet in self.collection.find(active({"owner_id": owner_id}), {"species": 1, "age": 1}):
            groups[pet.get("species", "other")].append(pet.get("age"))

        breakdown = []
        for species, ages in groups.items():
            known = [a for a in ages if a is not None]
            breakdown.append({
                "species": species,
                "count": len(ages),
                "avg_age": round(sum(known) / len(known), 1) if known else None,
            })
        breakdown.sort(key=lambda s: s["count"], reverse=True)
        return {"total_pets": sum(s["count"] for s in breakdown), "species_breakdown": breakdown}
