"""Pure economy rules: tiers, pricing, settlement and earning."""
