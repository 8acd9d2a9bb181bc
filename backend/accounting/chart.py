# accounting/chart.py
"""
SYSCOHADA chart of accounts rules.

Pure functions, no database access:
- account number format and class derivation
- nature derivation (a fixed function of the class)
- lettrable status (third-party class 4)
- the default chart seeded into a new exercise
- nesting a flat account list into a tree
"""

import re

ACCOUNT_NUMBER_RE = re.compile(r"^[1-9]\d*$")

ASSET = "ASSET"
LIABILITY = "LIABILITY"
EXPENSE = "EXPENSE"
REVENUE = "REVENUE"
SPECIAL = "SPECIAL"

NATURE_BY_CLASS = {
    1: LIABILITY,
    2: ASSET,
    3: ASSET,
    4: ASSET,
    5: ASSET,
    6: EXPENSE,
    7: REVENUE,
    8: SPECIAL,
    9: SPECIAL,
}

BALANCE_SHEET_CLASSES = (1, 2, 3, 4, 5)
EXPENSE_CLASS = 6
REVENUE_CLASS = 7
THIRD_PARTY_CLASS = 4


class ChartError(ValueError):
    """Malformed account number or class."""


def validate_account_number(number: str) -> str:
    number = (number or "").strip()
    if not ACCOUNT_NUMBER_RE.match(number):
        raise ChartError(
            f"Invalid account number '{number}': digits only, not starting with 0."
        )
    return number


def account_class(number: str) -> int:
    return int(validate_account_number(number)[0])


def nature_for_class(klass: int) -> str:
    try:
        return NATURE_BY_CLASS[klass]
    except KeyError:
        raise ChartError(f"Invalid account class: {klass}")


def is_lettrable(klass: int) -> bool:
    return klass == THIRD_PARTY_CLASS


# (number, label, parent number)
DEFAULT_CHART = (
    # Classe 1 - Comptes de ressources durables
    ("10", "Capital", None),
    ("101", "Capital social", "10"),
    ("11", "Réserves", None),
    ("12", "Report à nouveau", None),
    ("13", "Résultat net de l'exercice", None),
    ("16", "Emprunts et dettes assimilées", None),
    # Classe 2 - Comptes d'actif immobilisé
    ("20", "Charges immobilisées", None),
    ("21", "Immobilisations incorporelles", None),
    ("22", "Terrains", None),
    ("23", "Bâtiments", None),
    ("24", "Matériel", None),
    ("26", "Titres de participation", None),
    ("28", "Amortissements", None),
    # Classe 3 - Comptes de stocks
    ("31", "Marchandises", None),
    ("32", "Matières premières", None),
    ("33", "Autres approvisionnements", None),
    # Classe 4 - Comptes de tiers
    ("40", "Fournisseurs et comptes rattachés", None),
    ("401", "Fournisseurs", "40"),
    ("41", "Clients et comptes rattachés", None),
    ("411", "Clients", "41"),
    ("42", "Personnel", None),
    ("421", "Personnel - Rémunérations dues", "42"),
    ("43", "Organismes sociaux", None),
    ("44", "État et collectivités publiques", None),
    ("441", "État - Impôts et taxes", "44"),
    ("443", "État - TVA facturée", "44"),
    ("445", "État - TVA récupérable", "44"),
    # Classe 5 - Comptes de trésorerie
    ("50", "Titres de placement", None),
    ("52", "Banques", None),
    ("521", "Banques locales", "52"),
    ("53", "Établissements financiers", None),
    ("57", "Caisse", None),
    ("571", "Caisse siège", "57"),
    # Classe 6 - Comptes de charges
    ("60", "Achats", None),
    ("601", "Achats de marchandises", "60"),
    ("61", "Transports", None),
    ("62", "Services extérieurs A", None),
    ("63", "Services extérieurs B", None),
    ("64", "Impôts et taxes", None),
    ("65", "Autres charges", None),
    ("66", "Charges de personnel", None),
    ("661", "Salaires", "66"),
    ("67", "Frais financiers", None),
    ("68", "Dotations aux amortissements", None),
    # Classe 7 - Comptes de produits
    ("70", "Ventes", None),
    ("701", "Ventes de marchandises", "70"),
    ("71", "Subventions d'exploitation", None),
    ("72", "Production immobilisée", None),
    ("73", "Variations de stocks", None),
    ("75", "Autres produits", None),
    ("77", "Revenus financiers", None),
    ("78", "Transferts de charges", None),
)


def build_tree(accounts) -> list[dict]:
    """
    Nest accounts under their parent.

    `accounts` is any iterable of objects with `number`, `label`,
    `account_class`, `nature` and `parent_id`/`id`. Roots are accounts
    without a parent, or whose parent is not in the iterable.
    """
    nodes = {}
    order = []
    for account in accounts:
        nodes[account.id] = {
            "number": account.number,
            "label": account.label,
            "account_class": account.account_class,
            "nature": account.nature,
            "is_active": account.is_active,
            "children": [],
        }
        order.append(account)

    roots = []
    for account in order:
        node = nodes[account.id]
        parent = nodes.get(account.parent_id)
        if parent is not None:
            parent["children"].append(node)
        else:
            roots.append(node)
    return roots
