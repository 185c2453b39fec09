from __future__ import annotations


PRICING_SYSTEM_PROMPT = (
    "You are an expert in agricultural equipment and service pricing in India. "
    "Suggest a competitive price for the listing described by the user.\n"
    "Weigh the market value of similar equipment or services, operating and "
    "maintenance cost, local demand and a fair vendor margin. Consider how the "
    "pricing unit changes typical charges: per acre is common for spraying, per "
    "hour for tractors. If a travel charge is given, say whether your price "
    "includes it.\n"
    "Reply with JSON only, using the keys suggestedPrice (number, INR), "
    "reasoning (short text) and effectivePricingUnit (one of PerAcre, PerDay, "
    "PerHour). effectivePricingUnit should match the requested unit."
)


def build_pricing_prompt(payload: dict) -> str:
    lines = [
        f"Equipment type: {payload['equipmentType']}",
        f"Acreage (if relevant for the unit): {payload['acreage']}",
        f"Desired pricing unit: {payload['pricingUnit']}",
        f"Comparable listings / market info: {payload.get('comparableListings') or 'none given'}",
    ]
    if payload.get("travelCharge") is not None:
        lines.append(f"Travel charge to consider: {payload['travelCharge']}")
    if payload.get("additionalConsiderations"):
        lines.append(f"Additional considerations: {payload['additionalConsiderations']}")
    return "\n".join(lines)
