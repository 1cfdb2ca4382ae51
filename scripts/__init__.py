"""Operator commands for the review replica set.

| Script | Purpose |
|--------|---------|
| `seed_reviews.py` | Bootstrap, seed reviews, rebuild ratings, verify |
| `bootstrap_cluster.py` | Initiate the replica set and wait for a primary |
| `recompute_ratings.py` | Rebuild all ratings or recompute single properties |
| `validate_seed.py` | Verifies seed integrity |

Usage::

    # Full reseed from the listings export
    poetry run seed-reviews --source csv --csv-path data/cleaned_airbnb_data.csv

    # Reviews for completed bookings only
    poetry run seed-reviews --source bookings --completed-before 2025-01-01 --seed 7

    # Individual steps
    poetry run bootstrap-cluster --status
    poetry run recompute-ratings --property-id 140 --top 10

    # Validation
    poetry run validate-seed --expected 5 --verbose
"""
