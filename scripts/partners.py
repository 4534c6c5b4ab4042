"""Partner lookups shared by the partner-level scripts."""

from bson import ObjectId


def partner_query(ref):
    """Query matching a partner by ObjectId string or viewSlug."""
    if ObjectId.is_valid(ref):
        return {"_id": ObjectId(ref)}
    return {"viewSlug": ref}


def events_query(partner_id):
    """Projects linked to a partner through partnerId, partner1 or an embedded partner1."""
    return {"$or": [
        {"partnerId": str(partner_id)},
        {"partner1": partner_id},
        {"partner1._id": partner_id},
    ]}
