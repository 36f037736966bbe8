import argparse
import csv
from typing import Dict, List

from sqlalchemy.orm import Session
from database.db import SessionLocal
from services.gradebook import repository

CSV_PATH = "data/transmutation.csv"  # ✅ initial_grade,transmuted_grade

def load_rows(csv_path: str) -> List[Dict[str, float]]:
    rows = []
    with open(csv_path, newline="", encoding="utf-8-sig") as csvfile:
        reader = csv.DictReader(csvfile)
        for row in reader:
            rows.append({
                "initial_grade": int(row["initial_grade"]),         # integer key 0-100
                "transmuted_grade": float(row["transmuted_grade"]), # reported grade
            })
    return rows

def import_transmutation_rows(table_id: int, csv_path: str = CSV_PATH, db: Session = None) -> int:
    owns_session = db is None
    db = db or SessionLocal()
    try:
        table = repository.get_transmutation_table(db, table_id)
        saved = repository.replace_transmutation_rows(db, table, load_rows(csv_path))
    finally:
        if owns_session:
            db.close()
    print(f"✅ transmutation CSV -> table {table_id}: {len(saved)} rows")
    return len(saved)

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replace the rows of a transmutation table from a CSV file")
    parser.add_argument("table_id", type=int)
    parser.add_argument("--csv", default=CSV_PATH)
    args = parser.parse_args()
    import_transmutation_rows(args.table_id, args.csv)
