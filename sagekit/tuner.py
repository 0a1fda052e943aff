###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from .error_helper import ValidationError
from .logging import get_logger
from .utils_helper import base_name_from_image, name_from_base

logger = get_logger(service="sagekit_tuner")

SCALING_TYPES = ("Auto", "Linear", "Logarithmic", "ReverseLogarithmic")
STRATEGIES = ("Bayesian", "Random", "Hyperband", "Grid")
OBJECTIVE_TYPES = ("Maximize", "Minimize")
EARLY_STOPPING_TYPES = ("Off", "Auto")

# tuning job names are limited to 32 characters
TUNING_JOB_NAME_MAX_LENGTH = 32


class ParameterRange:
    __name__ = None

    def __init__(self, min_value, max_value, scaling_type="Auto"):
        if scaling_type not in SCALING_TYPES:
            raise ValidationError(
                f"Invalid scaling_type {scaling_type}. Expecting one of {', '.join(SCALING_TYPES)}"
            )
        if min_value > max_value:
            raise ValidationError(
                f"min_value ({min_value}) must be less than or equal to max_value ({max_value})"
            )
        self.min_value = min_value
        self.max_value = max_value
        self.scaling_type = scaling_type

    def is_valid(self, value):
        return self.min_value <= value <= self.max_value

    def as_tuning_range(self, name):
        return {
            "Name": name,
            "MinValue": str(self.min_value),
            "MaxValue": str(self.max_value),
            "ScalingType": self.scaling_type,
        }


class ContinuousParameter(ParameterRange):
    __name__ = "Continuous"


class IntegerParameter(ParameterRange):
    __name__ = "Integer"

    def __init__(self, min_value, max_value, scaling_type="Auto"):
        super().__init__(int(min_value), int(max_value), scaling_type)


class CategoricalParameter(ParameterRange):
    __name__ = "Categorical"

    def __init__(self, values):
        if isinstance(values, (list, tuple)):
            self.values = [str(v) for v in values]
        else:
            self.values = [str(values)]
        if not self.values:
            raise ValidationError("CategoricalParameter needs at least one value")

    def is_valid(self, value):
        return str(value) in self.values

    def as_tuning_range(self, name):
        return {"Name": name, "Values": self.values}


class HyperparameterTuner:
    """
    Launch a hyperparameter tuning job over ranges of an estimator's
    hyperparameters. The estimator's CreateTrainingJob shape becomes the
    tuning job's ``TrainingJobDefinition``.
    """

    def __init__(
        self,
        estimator,
        objective_metric_name,
        hyperparameter_ranges,
        metric_definitions=None,
        strategy="Bayesian",
        objective_type="Maximize",
        max_jobs=1,
        max_parallel_jobs=1,
        tags=None,
        base_tuning_job_name=None,
        early_stopping_type="Off",
    ):
        if not hyperparameter_ranges:
            raise ValidationError("Need to specify hyperparameter ranges")
        if strategy not in STRATEGIES:
            raise ValidationError(
                f"Invalid strategy {strategy}. Expecting one of {', '.join(STRATEGIES)}"
            )
        if objective_type not in OBJECTIVE_TYPES:
            raise ValidationError(
                f"Invalid objective_type {objective_type}. Expecting one of {', '.join(OBJECTIVE_TYPES)}"
            )
        if early_stopping_type not in EARLY_STOPPING_TYPES:
            raise ValidationError(
                f"Invalid early_stopping_type {early_stopping_type}. "
                f"Expecting one of {', '.join(EARLY_STOPPING_TYPES)}"
            )
        if max_jobs < 1 or max_parallel_jobs < 1:
            raise ValidationError("max_jobs and max_parallel_jobs must be positive integers")
        if max_parallel_jobs > max_jobs:
            raise ValidationError(
                f"max_parallel_jobs ({max_parallel_jobs}) cannot exceed max_jobs ({max_jobs})"
            )
        for name, parameter in hyperparameter_ranges.items():
            if not isinstance(parameter, ParameterRange):
                raise ValidationError(f"Range for {name} must be a ParameterRange")

        self.estimator = estimator
        self.objective_metric_name = objective_metric_name
        self._hyperparameter_ranges = dict(hyperparameter_ranges)
        self.metric_definitions = metric_definitions or estimator.metric_definitions
        self.strategy = strategy
        self.objective_type = objective_type
        self.max_jobs = max_jobs
        self.max_parallel_jobs = max_parallel_jobs
        self.tags = tags
        self.base_tuning_job_name = base_tuning_job_name
        self.early_stopping_type = early_stopping_type
        self._current_job_name = None
        self.latest_tuning_job = None

        if not self.metric_definitions and not _is_builtin_algorithm(estimator):
            raise ValidationError(
                "metric_definitions are required when tuning an estimator with a custom image"
            )

    def hyperparameter_ranges(self):
        """Ranges grouped the way ``ParameterRanges`` expects them"""
        ranges = {"CategoricalParameterRanges": [], "ContinuousParameterRanges": [], "IntegerParameterRanges": []}
        for name, parameter in self._hyperparameter_ranges.items():
            ranges[f"{parameter.__name__}ParameterRanges"].append(parameter.as_tuning_range(name))
        return ranges

    def _prepare_job_name(self, job_name=None):
        if job_name is not None:
            self._current_job_name = job_name
            return
        base_name = self.base_tuning_job_name or base_name_from_image(
            self.estimator.training_image_uri()
        )
        self._current_job_name = name_from_base(
            base_name, max_length=TUNING_JOB_NAME_MAX_LENGTH, short=True
        )

    def fit(self, inputs=None, job_name=None, wait=True, **kwargs):
        """
        Start the tuning job. Extra keyword arguments (``mini_batch_size``
        for built-in algorithms) go to the estimator's input preparation.
        """
        self.estimator._prepare_inputs(inputs, **kwargs)
        self._prepare_job_name(job_name)
        self.estimator._prepare_for_training(job_name=self._current_job_name)
        request = self._tuning_request(inputs)
        self.estimator.session.create_tuning_job(request)
        self.latest_tuning_job = self._current_job_name
        logger.info(f"Created hyperparameter tuning job {self._current_job_name}")
        if wait:
            self.wait()
        return self._current_job_name

    def _training_job_definition(self, inputs):
        definition = self.estimator._training_request(inputs)
        for key in ("TrainingJobName", "Tags", "ExperimentConfig"):
            definition.pop(key, None)

        static = definition.pop("HyperParameters", {})
        for name in self._hyperparameter_ranges:
            if name in static:
                logger.debug(f"Dropping static value of tuned hyperparameter {name}")
                static.pop(name)
        definition["StaticHyperParameters"] = static

        algorithm_spec = definition["AlgorithmSpecification"]
        if self.metric_definitions:
            algorithm_spec["MetricDefinitions"] = self.metric_definitions
        return definition

    def _tuning_request(self, inputs):
        tuning_config = {
            "Strategy": self.strategy,
            "HyperParameterTuningJobObjective": {
                "Type": self.objective_type,
                "MetricName": self.objective_metric_name,
            },
            "ResourceLimits": {
                "MaxNumberOfTrainingJobs": self.max_jobs,
                "MaxParallelTrainingJobs": self.max_parallel_jobs,
            },
            "ParameterRanges": self.hyperparameter_ranges(),
            "TrainingJobEarlyStoppingType": self.early_stopping_type,
        }
        request = {
            "HyperParameterTuningJobName": self._current_job_name,
            "HyperParameterTuningJobConfig": tuning_config,
            "TrainingJobDefinition": self._training_job_definition(inputs),
        }
        if self.tags:
            request["Tags"] = self.tags
        return request

    def _ensure_last_tuning_job(self):
        if self.latest_tuning_job is None:
            raise ValidationError("No tuning job available")

    def describe(self):
        self._ensure_last_tuning_job()
        return self.estimator.session.describe_tuning_job(self.latest_tuning_job)

    def wait(self, policy=None):
        self._ensure_last_tuning_job()
        return self.estimator.session.wait_for_tuning_job(self.latest_tuning_job, policy)

    def stop_tuning_job(self):
        self._ensure_last_tuning_job()
        self.estimator.session.stop_tuning_job(self.latest_tuning_job)

    def best_training_job(self):
        """Name of the best training job of the latest tuning job"""
        desc = self.describe()
        best = desc.get("BestTrainingJob")
        if best is None:
            raise ValidationError(
                f"Best training job not available for tuning job: {self.latest_tuning_job}"
            )
        return best["TrainingJobName"]

    def best_estimator(self):
        return type(self.estimator).attach(
            self.best_training_job(), self.estimator.session, wait=False
        )


def _is_builtin_algorithm(estimator):
    from .amazon.estimator import AmazonAlgorithmEstimator

    return isinstance(estimator, AmazonAlgorithmEstimator)
