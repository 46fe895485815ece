"""
Loan application intake wizard.

Scope:
- Draft creation with sequential application numbers
- Four-step wizard (personal, address, loan terms, review/submit) with autosave
- Drafts are the only mutable state; submission hands off to review
"""
