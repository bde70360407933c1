"""Determinism check for the rule-based statement path"""
from backend.ledger.pipeline import StatementPipeline, combine_statements
import os

# Sample text export simulating a two-page bank statement
TEXT_CONTENT = """DBS Bank Ltd
Statement of Account
01/03/2026 Opening Balance 1,000.00
02/03/2026 Salary ACME Pte Ltd 3,000.00 4,000.00
05/03/2026 Starbucks Coffee (5.50) 3,994.50
\f
2026-03-10 Netflix Subscription -15.98 3,978.52
2026-03-12 Grab Trip -12.40 3,966.12
Closing Balance 3,966.12"""


def run_once(pipeline, path):
    result = None
    for event in pipeline.process(path, "txt"):
        if event["type"] == "complete":
            result = event["statement"]
        elif event["type"] == "error":
            raise RuntimeError(event["message"])
    return result


def test_determinism():
    test_file = "determinism_test.txt"
    with open(test_file, "w") as f:
        f.write(TEXT_CONTENT)

    pipeline = StatementPipeline()
    try:
        res1 = run_once(pipeline, test_file)
        res2 = run_once(pipeline, test_file)
    finally:
        os.remove(test_file)

    combined = combine_statements([res1, res2])

    print("=== DETERMINISM RESULTS ===")
    print(f"Row count Match: {len(res1['transactions']) == len(res2['transactions'])} ({len(res1['transactions'])})")
    print(f"Transactions Match: {res1['transactions'] == res2['transactions']}")
    print(f"Meta Match: {res1['meta'] == res2['meta']}")
    print(f"Combined rows after dedup: {len(combined['transactions'])}")

    categories = [tx["category"] for tx in res1["transactions"]]
    if len(res1["transactions"]) == 4 and combined["duplicates_removed"] == 4:
        print(f"\n✅ Rule-based path verified: 4 transactions, categories {categories}")
    else:
        print("\n❌ Logic Error: Expected 4 transactions and 4 duplicates on combine.")
        print(f"Actual: {len(res1['transactions'])} tx, {combined['duplicates_removed']} duplicates")


if __name__ == "__main__":
    test_determinism()
