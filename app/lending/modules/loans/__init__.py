"""
Review workflow and disbursement.

Submitted applications move through review to approval/rejection; disbursing an
approved application snapshots its amortization into a Loan.
"""
