# accounts/permission_defaults.py

ROLE_DEFAULTS = {
    "OWNER": {
        # Chart of accounts
        "accounts.view",
        "accounts.manage",

        # Journal
        "journal.view",
        "journal.create",
        "journal.validate",
        "journal.post",
        "journal.letter",

        # Periods & exercises
        "periods.view",
        "periods.close",
        "periods.reopen",
        "exercise.manage",
        "exercise.close",

        # Reports
        "reports.view",
    },
    "ADMIN": {
        "accounts.view",
        "accounts.manage",

        "journal.view",
        "journal.create",
        "journal.validate",
        "journal.post",
        "journal.letter",

        "periods.view",
        "periods.close",
        "exercise.manage",

        "reports.view",
    },
    "ACCOUNTANT": {
        "accounts.view",

        "journal.view",
        "journal.create",
        "journal.validate",
        "journal.letter",

        "periods.view",
        "reports.view",
    },
    "VIEWER": {
        "accounts.view",
        "journal.view",
        "periods.view",
        "reports.view",
    },
}


def all_permission_codes() -> set[str]:
    codes: set[str] = set()
    for s in ROLE_DEFAULTS.values():
        codes |= set(s)
    return codes
