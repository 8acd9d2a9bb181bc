"""
Ledger app - SYSCOHADA double-entry bookkeeping.

This app provides:
- Exercise: fiscal years
- Account: chart of accounts per exercise
- JournalEntry / EntryLine: entries and their debit/credit lines
- Anomaly: validation findings
- PeriodClosure / CarryForward: closing records

Commands (commands.py, closing.py) handle all mutations.
"""
