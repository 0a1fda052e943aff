###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from ..error_helper import HyperparameterValidationError, ValidationError
from .hyperparameter import (
    Hyperparameter as HP,
    HyperparameterSchema,
    ge,
    gt,
    isin,
    le,
    lt,
    to_bool,
    to_list,
)


@dataclass(frozen=True)
class AlgorithmSpec:
    """
    Everything that distinguishes one built-in algorithm from another:
    image repository and version, hyperparameter schema, fixed
    hyperparameters and cross-field checks.
    """

    name: str
    schema: HyperparameterSchema
    repo_version: str = "1"
    default_mini_batch_size: Optional[int] = None
    fixed_mini_batch_size: bool = False
    extra_hyperparameters: Dict[str, str] = field(default_factory=dict)
    checks: Tuple[Callable[[Dict[str, str]], None], ...] = ()
    max_feature_dim: Optional[int] = None

    def hyperparameters(self, values):
        result = self.schema.validate(values)
        for check in self.checks:
            check(result)
        result.update(self.extra_hyperparameters)
        return result

    def validate_feature_dim(self, feature_dim):
        if feature_dim < 1 or (self.max_feature_dim is not None and feature_dim > self.max_feature_dim):
            upper = self.max_feature_dim if self.max_feature_dim is not None else "inf"
            raise HyperparameterValidationError(
                f"Invalid hyperparameter value {feature_dim} for feature_dim. "
                f"Expecting: An integer in [1, {upper}]"
            )
        return feature_dim


def _linear_learner_classes(hps):
    if hps.get("predictor_type") == "multiclass_classifier" and int(hps.get("num_classes", 0)) < 3:
        raise HyperparameterValidationError(
            "For predictor_type 'multiclass_classifier', 'num_classes' should be set to a "
            "value greater than 2."
        )


def _knn_dimension_reduction(hps):
    if ("dimension_reduction_type" in hps) != ("dimension_reduction_target" in hps):
        raise HyperparameterValidationError(
            "Both dimension_reduction_type and dimension_reduction_target must be set together"
        )


KMEANS = AlgorithmSpec(
    name="kmeans",
    default_mini_batch_size=5000,
    # KMeans requires this hp to fit on Record objects
    extra_hyperparameters={"force_dense": "True"},
    schema=HyperparameterSchema(
        (
            HP("k", int, (gt(1),), "An integer greater-than 1", required=True),
            HP("init_method", str, (isin("random", "kmeans++"),), 'One of "random", "kmeans++"'),
            HP("local_lloyd_max_iter", int, (gt(0),), "An integer greater-than 0", attribute="max_iterations"),
            HP("local_lloyd_tol", float, (ge(0), le(1)), "An float in [0, 1]", attribute="tol"),
            HP("local_lloyd_num_trials", int, (gt(0),), "An integer greater-than 0", attribute="num_trials"),
            HP(
                "local_lloyd_init_method",
                str,
                (isin("random", "kmeans++"),),
                'One of "random", "kmeans++"',
                attribute="local_init_method",
            ),
            HP("half_life_time_size", int, (ge(0),), "An integer greater-than-or-equal-to 0"),
            HP("epochs", int, (gt(0),), "An integer greater-than 0"),
            HP("extra_center_factor", int, (gt(0),), "An integer greater-than 0", attribute="center_factor"),
            HP("eval_metrics", to_list, (), 'A comma separated list of "msd" or "ssd"'),
        )
    ),
)

PCA = AlgorithmSpec(
    name="pca",
    default_mini_batch_size=500,
    schema=HyperparameterSchema(
        (
            HP("num_components", int, (gt(0),), "Value must be an integer greater than zero", required=True),
            HP(
                "algorithm_mode",
                str,
                (isin("regular", "randomized"),),
                'Value must be one of "regular" and "randomized"',
            ),
            HP("subtract_mean", to_bool, (), "Value must be a boolean"),
            HP("extra_components", int, (), "Value must be an integer greater than or equal to 0, or -1."),
        )
    ),
)

LINEAR_LEARNER = AlgorithmSpec(
    name="linear-learner",
    default_mini_batch_size=1000,
    checks=(_linear_learner_classes,),
    schema=HyperparameterSchema(
        (
            HP(
                "predictor_type",
                str,
                (isin("binary_classifier", "regressor", "multiclass_classifier"),),
                'One of "binary_classifier" or "multiclass_classifier" or "regressor"',
                required=True,
            ),
            HP(
                "binary_classifier_model_selection_criteria",
                str,
                (
                    isin(
                        "accuracy",
                        "f1",
                        "f_beta",
                        "precision_at_target_recall",
                        "recall_at_target_precision",
                        "cross_entropy_loss",
                        "loss_function",
                    ),
                ),
            ),
            HP("target_recall", float, (gt(0), lt(1)), "A float in (0,1)"),
            HP("target_precision", float, (gt(0), lt(1)), "A float in (0,1)"),
            HP("positive_example_weight_mult", str, (), "A float greater than 0 or 'auto' or 'balanced'"),
            HP("epochs", int, (gt(0),), "An integer greater-than 0"),
            HP("use_bias", to_bool, (), "Either True or False"),
            HP("num_models", int, (gt(0),), "An integer greater-than 0"),
            HP("num_calibration_samples", int, (gt(0),), "An integer greater-than 0"),
            HP("init_method", str, (isin("uniform", "normal"),), 'One of "uniform" or "normal"'),
            HP("init_scale", float, (gt(0),), "A float greater-than 0"),
            HP("init_sigma", float, (gt(0),), "A float greater-than 0"),
            HP("init_bias", float, (), "A number"),
            HP("optimizer", str, (isin("sgd", "adam", "rmsprop", "auto"),), 'One of "sgd", "adam", "rmsprop" or "auto'),
            HP(
                "loss",
                str,
                (
                    isin(
                        "logistic",
                        "squared_loss",
                        "absolute_loss",
                        "hinge_loss",
                        "eps_insensitive_squared_loss",
                        "eps_insensitive_absolute_loss",
                        "quantile_loss",
                        "huber_loss",
                        "softmax_loss",
                        "auto",
                    ),
                ),
            ),
            HP("wd", float, (ge(0),), "A float greater-than or equal to 0"),
            HP("l1", float, (ge(0),), "A float greater-than or equal to 0"),
            HP("momentum", float, (ge(0), lt(1)), "A float in [0,1)"),
            HP("learning_rate", float, (gt(0),), "A float greater-than 0"),
            HP("beta_1", float, (ge(0), lt(1)), "A float in [0,1)"),
            HP("beta_2", float, (ge(0), lt(1)), "A float in [0,1)"),
            HP("bias_lr_mult", float, (gt(0),), "A float greater-than 0"),
            HP("bias_wd_mult", float, (ge(0),), "A float greater-than or equal to 0"),
            HP("use_lr_scheduler", to_bool, (), "A boolean"),
            HP("lr_scheduler_step", int, (gt(0),), "An integer greater-than 0"),
            HP("lr_scheduler_factor", float, (gt(0), lt(1)), "A float in (0,1)"),
            HP("lr_scheduler_minimum_lr", float, (gt(0),), "A float greater-than 0"),
            HP("normalize_data", to_bool, (), "A boolean"),
            HP("normalize_label", to_bool, (), "A boolean"),
            HP("unbias_data", to_bool, (), "A boolean"),
            HP("unbias_label", to_bool, (), "A boolean"),
            HP("num_point_for_scaler", int, (gt(0),), "An integer greater-than 0"),
            HP("margin", float, (ge(0),), "A float greater-than or equal to 0"),
            HP("quantile", float, (gt(0), lt(1)), "A float in (0,1)"),
            HP("loss_insensitivity", float, (gt(0),), "A float greater-than 0"),
            HP("huber_delta", float, (ge(0),), "A float greater-than or equal to 0"),
            HP("early_stopping_patience", int, (gt(0),), "An integer greater-than 0"),
            HP("early_stopping_tolerance", float, (gt(0),), "A float greater-than 0"),
            HP("num_classes", int, (gt(0), le(1000000)), "An integer in [1,1000000]"),
            HP("accuracy_top_k", int, (gt(0), le(1000000)), "An integer in [1,1000000]"),
            HP("f_beta", float, (gt(0),), "A float greater-than 0"),
            HP("balance_multiclass_weights", to_bool, (), "A boolean"),
        )
    ),
)


def _init_hyperparameters(prefix):
    return (
        HP(
            f"{prefix}_init_method",
            str,
            (isin("normal", "uniform", "constant"),),
            'Value "normal", "uniform" or "constant"',
        ),
        HP(f"{prefix}_init_scale", float, (ge(0),), "A non-negative float"),
        HP(f"{prefix}_init_sigma", float, (ge(0),), "A non-negative float"),
        HP(f"{prefix}_init_value", float, (), "A float value"),
    )


FACTORIZATION_MACHINES = AlgorithmSpec(
    name="factorization-machines",
    schema=HyperparameterSchema(
        (
            HP("num_factors", int, (ge(1),), "An integer greater than zero", required=True),
            HP(
                "predictor_type",
                str,
                (isin("binary_classifier", "regressor"),),
                'Value "binary_classifier" or "regressor"',
                required=True,
            ),
            HP("epochs", int, (gt(0),), "An integer greater than 0"),
            HP("clip_gradient", float, (), "A float value"),
            HP("eps", float, (), "A float value"),
            HP("rescale_grad", float, (), "A float value"),
            HP("bias_lr", float, (ge(0),), "A non-negative float"),
            HP("linear_lr", float, (ge(0),), "A non-negative float"),
            HP("factors_lr", float, (ge(0),), "A non-negative float"),
            HP("bias_wd", float, (ge(0),), "A non-negative float"),
            HP("linear_wd", float, (ge(0),), "A non-negative float"),
            HP("factors_wd", float, (ge(0),), "A non-negative float"),
            *_init_hyperparameters("bias"),
            *_init_hyperparameters("linear"),
            *_init_hyperparameters("factors"),
        )
    ),
)

KNN = AlgorithmSpec(
    name="knn",
    checks=(_knn_dimension_reduction,),
    schema=HyperparameterSchema(
        (
            HP("k", int, (ge(1),), "An integer greater than 0", required=True),
            HP("sample_size", int, (ge(1),), "An integer greater than 0", required=True),
            HP(
                "predictor_type",
                str,
                (isin("classifier", "regressor"),),
                'One of "classifier" or "regressor"',
                required=True,
            ),
            HP("dimension_reduction_type", str, (isin("sign", "fjlt"),), 'One of "sign" or "fjlt"'),
            HP("dimension_reduction_target", int, (ge(1),), "An integer greater than 0"),
            HP(
                "index_type",
                str,
                (isin("faiss.Flat", "faiss.IVFFlat", "faiss.IVFPQ"),),
                'One of "faiss.Flat", "faiss.IVFFlat", "faiss.IVFPQ"',
            ),
            HP("index_metric", str, (isin("L2", "INNER_PRODUCT", "COSINE"),), 'One of "L2", "INNER_PRODUCT", "COSINE"'),
            HP("faiss_index_ivf_nlists", str, (), '"auto" or an integer greater than 0'),
            HP("faiss_index_pq_m", int, (ge(1),), "An integer greater than 0"),
        )
    ),
)

RANDOM_CUT_FOREST = AlgorithmSpec(
    name="randomcutforest",
    default_mini_batch_size=1000,
    fixed_mini_batch_size=True,
    max_feature_dim=10000,
    schema=HyperparameterSchema(
        (
            HP("num_samples_per_tree", int, (ge(1), le(2048)), "An integer in [1, 2048]"),
            HP("num_trees", int, (ge(50), le(1000)), "An integer in [50, 1000]"),
            HP("eval_metrics", to_list, (), 'A comma separated list of "accuracy" or "precision_recall_fscore"'),
        )
    ),
)

ALGORITHMS = {
    spec.name: spec
    for spec in (KMEANS, PCA, LINEAR_LEARNER, FACTORIZATION_MACHINES, KNN, RANDOM_CUT_FOREST)
}


def get_algorithm(name) -> AlgorithmSpec:
    try:
        return ALGORITHMS[name]
    except KeyError:
        raise ValidationError(
            f"Unknown algorithm: {name}. Supported: {', '.join(sorted(ALGORITHMS))}"
        ) from None
