"""Decision core: data model, role relation, matcher and enforcer."""
