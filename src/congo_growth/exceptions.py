"""Exceptions raised by the synthetic control engine."""


class SCMError(Exception):
    """Base class for estimation errors.

    Optional context (unit, predictor set, trial index) is kept as attributes
    and appended to the message so callers can decide to skip, retry or abort.
    Context set after construction, such as the trial index added by the
    predictor search, shows up in the message too.
    """

    def __init__(self, message, unit=None, predictors=None, trial=None):
        super().__init__(message)
        self.message = message
        self.unit = unit
        self.predictors = tuple(predictors) if predictors is not None else None
        self.trial = trial

    def __str__(self):
        context = []
        if self.unit is not None:
            context.append(f"unit={self.unit!r}")
        if self.predictors is not None:
            context.append(f"predictors={list(self.predictors)}")
        if self.trial is not None:
            context.append(f"trial={self.trial}")

        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class MissingDataError(SCMError):
    """Required (unit, year, variable) observations are absent from the panel."""

    def __init__(self, missing, **kwargs):
        self.missing = list(missing)
        preview = ", ".join(str(m) for m in self.missing[:5])
        if len(self.missing) > 5:
            preview += ", ..."
        super().__init__(
            f"{len(self.missing)} required observations missing: {preview}",
            **kwargs,
        )


class OptimizationError(SCMError):
    """Weight optimization was infeasible or did not converge."""
    pass


class DegenerateFitError(SCMError):
    """Pre-treatment MSPE is zero, so the post/pre ratio is undefined."""
    pass
