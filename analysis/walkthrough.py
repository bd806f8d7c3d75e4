#!/usr/bin/env python3
"""
Iris walkthrough: Multiple Imputation by Chained Equations end to end
- Data: iris (150 records, 4 measurements + species)
- Missingness: 7 sepal_length + 7 species cells removed (MCAR)
- Imputation: m=20 datasets, 20 iterations each (mice_engine/mice_config.yaml)
- Analysis: OLS per imputed dataset, pooled with Rubin's rules
"""

import os
import pickle
import sys
import warnings

import pandas as pd
from sklearn.datasets import load_iris

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mice_engine import (
    Dataset,
    MissingnessMatrix,
    MultipleImputer,
    ampute,
    analyze,
    load_config,
    ols,
    pool,
    setup_logging,
)

warnings.filterwarnings('ignore', category=FutureWarning)

OUTPUT_DIR = "analysis/output/iris"
MISSING_COUNTS = {'sepal_length': 7, 'species': 7}
AMPUTE_SEED = 2024
FORMULA = "sepal_length ~ sepal_width + petal_length + species"


def load_data():
    """Load iris with snake_case columns and species as a factor"""
    print(f"\n{'='*60}")
    print("Step 1: Load iris")
    print(f"{'='*60}")

    bunch = load_iris(as_frame=True)
    df = bunch.data.copy()
    df.columns = ['sepal_length', 'sepal_width', 'petal_length', 'petal_width']
    df['species'] = pd.Categorical.from_codes(bunch.target, categories=list(bunch.target_names))

    print(f"Rows: {len(df):,}, columns: {len(df.columns)}")
    print(f"Species: {df['species'].value_counts().to_dict()}")

    return df


def remove_values(df):
    """Remove a fixed number of cells per variable (MCAR)"""
    print(f"\n{'='*60}")
    print("Step 2: Remove values (MCAR)")
    print(f"{'='*60}")

    df_missing = ampute(df, counts=MISSING_COUNTS, random_state=AMPUTE_SEED)

    for col, count in MISSING_COUNTS.items():
        print(f"  ✓ {col}: {count} cells removed")

    missingness = MissingnessMatrix.from_frame(df_missing)
    complete_cases = int((~missingness.values.any(axis=1)).sum())
    print(f"\nComplete cases: {complete_cases}/{len(df_missing)} "
          f"({complete_cases / len(df_missing) * 100:.1f}%)")

    print("\nMissing-data pattern (1 = observed, 0 = missing):")
    print(missingness.pattern().to_string())

    return df_missing


def run_imputation(df_missing, config):
    """Default predictor graph, then m chained-equations runs"""
    print(f"\n{'='*60}")
    print("Step 3: Multiple Imputation (MICE)")
    print(f"{'='*60}")

    dataset = Dataset(df_missing)
    imputer = MultipleImputer(config)
    graph = imputer.build_graph(dataset)

    print("\nImputation settings:")
    print(f"  - m: {config.m}")
    print(f"  - iterations: {config.iterations}")
    print(f"  - seed: {config.seed}")
    for var, method in graph.methods().items():
        if method is not None:
            print(f"  - {var:14s}: {method} <- {', '.join(graph.predictors(var))}")

    collection = imputer.generate(dataset, graph=graph)

    print(f"\n✅ {collection.m} imputed datasets created")

    trace = collection.trace_frame()
    last = trace[trace['iteration'] == config.iterations]
    print("\nChain means at the last iteration (sepal_length):")
    summary = last[last['variable'] == 'sepal_length']['mean']
    print(f"  min={summary.min():.3f}, mean={summary.mean():.3f}, max={summary.max():.3f}")

    return collection


def pool_results(collection, alpha):
    """OLS on every imputed dataset, combined with Rubin's rules"""
    print(f"\n{'='*60}")
    print("Step 4: Analysis + Pooling")
    print(f"{'='*60}")
    print(f"\nModel: {FORMULA}")

    results = analyze(collection, ols(FORMULA))
    pooled = pool(results, alpha=alpha)

    table = pooled.to_frame()
    columns = ['estimate', 'std_error', 'df', 'p_value'] + [
        c for c in table.columns if c.startswith('ci_')
    ] + ['fmi']
    print("\nPooled estimates:")
    print(table[columns].round(4).to_string())

    return pooled


def save_results(collection, pooled, output_dir):
    """Imputed datasets and the pooled table"""
    print(f"\n{'='*60}")
    print("Step 5: Save")
    print(f"{'='*60}")

    os.makedirs(output_dir, exist_ok=True)

    long_path = os.path.join(output_dir, "imputed_long.csv")
    collection.long(include_original=True).to_csv(long_path, index=False)
    print(f"  ✓ Long format: {long_path}")

    pickle_path = os.path.join(output_dir, "imputed_datasets.pkl")
    with open(pickle_path, 'wb') as f:
        pickle.dump(list(collection), f)
    print(f"  ✓ Pickle: {pickle_path}")

    pooled_path = os.path.join(output_dir, "pooled_estimates.csv")
    pooled.to_frame().to_csv(pooled_path)
    print(f"  ✓ Pooled: {pooled_path}")


def main():
    print("=" * 60)
    print("MICE Walkthrough: iris")
    print("=" * 60)

    setup_logging(level="WARNING")
    config = load_config()

    df = load_data()
    df_missing = remove_values(df)
    collection = run_imputation(df_missing, config)
    pooled = pool_results(collection, config.alpha)
    save_results(collection, pooled, OUTPUT_DIR)

    print("\n" + "=" * 60)
    print("✅ Walkthrough complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
