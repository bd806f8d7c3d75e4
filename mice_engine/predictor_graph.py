"""
Predictor Graph
===============

For every variable with missing cells: which other variables predict it and
which imputation method applies. The default graph predicts each incomplete
variable from all other variables, with the method chosen by declared type
(pmm / logreg / polyreg). Complete variables carry no method but still serve
as predictors.
"""

import pandas as pd

from .exceptions import ConfigurationError, PredictorGraphError, UnsupportedMethodError
from .methods import DEFAULT_MAX_LEVELS, DEFAULT_METHODS, get_method
from .missingness import MissingnessMatrix


class PredictorGraph:
    """
    Parameters
    ----------
    variables : list of str
        All variables, in declaration order
    types : dict
        Variable -> VariableType
    """

    def __init__(self, variables, types):
        self._variables = list(variables)
        self._types = dict(types)
        self._predictors = {var: set() for var in self._variables}
        self._methods = {var: None for var in self._variables}
        self._visit_sequence = None

    @classmethod
    def default(cls, dataset, missingness=None):
        if missingness is None:
            missingness = MissingnessMatrix.from_dataset(dataset)

        graph = cls(dataset.variables, dataset.types)
        for target in missingness.incomplete_variables():
            graph._methods[target] = DEFAULT_METHODS[dataset.type_of(target)]
            graph._predictors[target] = {v for v in graph._variables if v != target}
        return graph

    def copy(self):
        other = PredictorGraph(self._variables, self._types)
        other._predictors = {var: set(p) for var, p in self._predictors.items()}
        other._methods = dict(self._methods)
        other._visit_sequence = (
            None if self._visit_sequence is None else list(self._visit_sequence)
        )
        return other

    @property
    def variables(self):
        return list(self._variables)

    def _require(self, variable):
        if variable not in self._predictors:
            raise ConfigurationError("Unknown variable", variable=variable)

    def predictors(self, target):
        """Predictors of `target`, in declaration order"""
        self._require(target)
        chosen = self._predictors[target]
        return tuple(v for v in self._variables if v in chosen)

    def method(self, target):
        self._require(target)
        return self._methods[target]

    def set_predictor(self, target, source, enabled=True):
        self._require(target)
        self._require(source)
        if source == target:
            if enabled:
                raise PredictorGraphError("A variable cannot predict itself", variable=target)
            return self

        if enabled:
            self._predictors[target].add(source)
        else:
            self._predictors[target].discard(source)
        return self

    def set_predictors(self, target, sources):
        """Replace the predictor set of `target`"""
        self._require(target)
        sources = list(sources)
        for source in sources:
            self._require(source)
        if target in sources:
            raise PredictorGraphError("A variable cannot predict itself", variable=target)
        self._predictors[target] = set(sources)
        return self

    def exclude_predictor(self, source):
        """Remove `source` from every predictor set"""
        self._require(source)
        for target in self._variables:
            self._predictors[target].discard(source)
        return self

    def set_method(self, target, method):
        """
        Assign an imputation method; None clears it.

        Raises UnsupportedMethodError for an unknown method or one that does
        not handle the target's declared type.
        """
        self._require(target)
        if method is not None:
            handler = get_method(method)
            var_type = self._types[target]
            if not handler.supports(var_type):
                raise UnsupportedMethodError(
                    method, variable=target,
                    reason=f"not valid for {var_type.value} variables",
                )
        self._methods[target] = method
        return self

    @property
    def visit_sequence(self):
        return None if self._visit_sequence is None else list(self._visit_sequence)

    @visit_sequence.setter
    def visit_sequence(self, sequence):
        if sequence is None:
            self._visit_sequence = None
            return
        sequence = list(sequence)
        for var in sequence:
            self._require(var)
        if len(set(sequence)) != len(sequence):
            raise PredictorGraphError(f"Visit sequence has duplicates: {sequence}")
        self._visit_sequence = sequence

    def visiting_order(self, missingness):
        """Incomplete variables in the order one iteration visits them"""
        incomplete = missingness.incomplete_variables()
        if self._visit_sequence is None:
            return incomplete

        missing_from_sequence = [v for v in incomplete if v not in self._visit_sequence]
        if missing_from_sequence:
            raise PredictorGraphError(
                f"Visit sequence skips incomplete variables {missing_from_sequence}"
            )
        return [v for v in self._visit_sequence if v in incomplete]

    def validate(self, dataset, missingness=None, max_levels=DEFAULT_MAX_LEVELS):
        """
        Check the graph against the data before any run starts.

        Every incomplete variable needs a method that handles its type and
        level count, and a non-empty predictor set unless the method
        tolerates zero predictors.
        """
        if missingness is None:
            missingness = MissingnessMatrix.from_dataset(dataset)

        if list(dataset.variables) != self._variables:
            raise PredictorGraphError(
                "Predictor graph variables do not match the dataset columns"
            )

        for target in self.visiting_order(missingness):
            method = self._methods[target]
            if method is None:
                raise PredictorGraphError(
                    "Incomplete variable has no imputation method", variable=target
                )
            handler = get_method(method, max_levels=max_levels)
            handler.check(target, dataset)
            if not self._predictors[target] and not handler.allows_empty_predictors:
                raise PredictorGraphError(
                    f"Empty predictor set and method {method!r} needs predictors",
                    variable=target,
                )
        return self

    def to_frame(self):
        """0/1 predictor matrix: rows are targets, columns predictors"""
        matrix = pd.DataFrame(0, index=self._variables, columns=self._variables)
        for target, sources in self._predictors.items():
            for source in sources:
                matrix.loc[target, source] = 1
        return matrix

    def methods(self):
        return dict(self._methods)

    def __repr__(self):
        active = {t: m for t, m in self._methods.items() if m is not None}
        return f"PredictorGraph(methods={active})"
