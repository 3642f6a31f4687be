def split_activity_types(values) -> set[str]:
    # entries may themselves be "Run, TrailRun"
    out = set()
    for v in values or []:
        if not isinstance(v, str):
            continue
        for part in v.split(","):
            part = part.strip().lower()
            if part:
                out.add(part)
    return out

def activity_type_names(raw: dict) -> set[str]:
    names = set()
    for key in ("type", "sport_type"):
        v = raw.get(key)
        if isinstance(v, str) and v.strip():
            names.add(v.strip().lower())
    return names
