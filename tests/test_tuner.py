import pytest

from sagekit.amazon.estimator import AmazonAlgorithmEstimator, RecordSet
from sagekit.error_helper import ValidationError
from sagekit.estimator import Estimator
from sagekit.tuner import CategoricalParameter, ContinuousParameter, HyperparameterTuner, IntegerParameter

from tests.conftest import ROLE

IMAGE = "123456789012.dkr.ecr.us-west-2.amazonaws.com/my-trainer:latest"
METRICS = [{"Name": "validation:accuracy", "Regex": "accuracy=([0-9.]+)"}]


@pytest.fixture
def estimator(session):
    return Estimator(
        IMAGE,
        ROLE,
        1,
        "ml.m5.xlarge",
        session=session,
        hyperparameters={"epochs": 3, "lr": 0.1},
        tags=[{"Key": "k", "Value": "v"}],
    )


def _ranges():
    return {
        "lr": ContinuousParameter(0.01, 0.2, scaling_type="Logarithmic"),
        "layers": IntegerParameter(1, 4.0),
        "optimizer": CategoricalParameter(["sgd", "adam"]),
    }


def test_parameter_ranges_render_as_strings():
    assert ContinuousParameter(0.01, 0.2).as_tuning_range("lr") == {
        "Name": "lr",
        "MinValue": "0.01",
        "MaxValue": "0.2",
        "ScalingType": "Auto",
    }
    assert IntegerParameter(1.0, 5).as_tuning_range("n")["MaxValue"] == "5"
    assert CategoricalParameter([1, 2]).as_tuning_range("c") == {"Name": "c", "Values": ["1", "2"]}
    assert CategoricalParameter("only").values == ["only"]


def test_parameter_range_validation():
    with pytest.raises(ValidationError):
        ContinuousParameter(1, 0)
    with pytest.raises(ValidationError):
        IntegerParameter(1, 2, scaling_type="Exponential")
    assert IntegerParameter(1, 3).is_valid(2)
    assert not CategoricalParameter(["a"]).is_valid("b")


def test_tuning_request(estimator, sagemaker_client):
    tuner = HyperparameterTuner(
        estimator,
        "validation:accuracy",
        _ranges(),
        metric_definitions=METRICS,
        strategy="Random",
        max_jobs=10,
        max_parallel_jobs=2,
        tags=[{"Key": "team", "Value": "ml"}],
    )

    name = tuner.fit("s3://b/train", job_name="tune-job", wait=False)

    assert name == "tune-job"
    request = sagemaker_client.create_hyper_parameter_tuning_job.call_args.kwargs
    config = request["HyperParameterTuningJobConfig"]
    assert config["Strategy"] == "Random"
    assert config["HyperParameterTuningJobObjective"] == {"Type": "Maximize", "MetricName": "validation:accuracy"}
    assert config["ResourceLimits"] == {"MaxNumberOfTrainingJobs": 10, "MaxParallelTrainingJobs": 2}
    assert config["TrainingJobEarlyStoppingType"] == "Off"
    assert config["ParameterRanges"]["ContinuousParameterRanges"][0]["ScalingType"] == "Logarithmic"
    assert config["ParameterRanges"]["IntegerParameterRanges"][0]["MaxValue"] == "4"
    assert config["ParameterRanges"]["CategoricalParameterRanges"] == [{"Name": "optimizer", "Values": ["sgd", "adam"]}]

    definition = request["TrainingJobDefinition"]
    assert definition["StaticHyperParameters"] == {"epochs": "3"}
    assert definition["AlgorithmSpecification"]["MetricDefinitions"] == METRICS
    assert definition["InputDataConfig"][0]["ChannelName"] == "training"
    for absent in ("TrainingJobName", "Tags", "HyperParameters"):
        assert absent not in definition
    assert request["Tags"] == [{"Key": "team", "Value": "ml"}]


def test_generated_tuning_job_name_fits_limit(estimator, sagemaker_client):
    tuner = HyperparameterTuner(estimator, "m", _ranges(), metric_definitions=METRICS)
    name = tuner.fit("s3://b/train", wait=False)
    assert len(name) <= 32
    assert name.startswith("my-trainer-")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"strategy": "Exhaustive"},
        {"objective_type": "Maximise"},
        {"early_stopping_type": "On"},
        {"max_jobs": 0},
        {"max_jobs": 2, "max_parallel_jobs": 3},
    ],
)
def test_tuner_validation(estimator, kwargs):
    with pytest.raises(ValidationError):
        HyperparameterTuner(estimator, "m", _ranges(), metric_definitions=METRICS, **kwargs)


def test_ranges_required_and_typed(estimator):
    with pytest.raises(ValidationError):
        HyperparameterTuner(estimator, "m", {}, metric_definitions=METRICS)
    with pytest.raises(ValidationError):
        HyperparameterTuner(estimator, "m", {"lr": (0.1, 0.2)}, metric_definitions=METRICS)


def test_custom_image_requires_metric_definitions(estimator):
    with pytest.raises(ValidationError, match="metric_definitions"):
        HyperparameterTuner(estimator, "m", _ranges())


def test_builtin_algorithm_tuning(session, sagemaker_client):
    kmeans = AmazonAlgorithmEstimator("kmeans", ROLE, 1, "ml.c5.xlarge", hyperparameters={"k": 5}, session=session)
    tuner = HyperparameterTuner(kmeans, "test:msd", {"k": IntegerParameter(2, 10)}, objective_type="Minimize")
    records = RecordSet("s3://b/train/.amazon.manifest", num_records=1000, feature_dim=8)

    tuner.fit(records, mini_batch_size=100, job_name="kmeans-tune", wait=False)

    definition = sagemaker_client.create_hyper_parameter_tuning_job.call_args.kwargs["TrainingJobDefinition"]
    assert definition["StaticHyperParameters"] == {
        "force_dense": "True",
        "feature_dim": "8",
        "mini_batch_size": "100",
    }
    assert "MetricDefinitions" not in definition["AlgorithmSpecification"]


def test_best_training_job_and_estimator(estimator, sagemaker_client):
    tuner = HyperparameterTuner(estimator, "m", _ranges(), metric_definitions=METRICS)
    with pytest.raises(ValidationError):
        tuner.best_training_job()

    tuner.fit("s3://b/train", job_name="tune-job", wait=False)
    sagemaker_client.describe_hyper_parameter_tuning_job.return_value = {"HyperParameterTuningJobStatus": "InProgress"}
    with pytest.raises(ValidationError, match="Best training job not available"):
        tuner.best_training_job()

    sagemaker_client.describe_hyper_parameter_tuning_job.return_value = {
        "HyperParameterTuningJobStatus": "Completed",
        "BestTrainingJob": {"TrainingJobName": "tune-job-007-abc"},
    }
    sagemaker_client.describe_training_job.return_value = {
        "AlgorithmSpecification": {"TrainingImage": IMAGE, "TrainingInputMode": "File"},
        "RoleArn": ROLE,
        "ResourceConfig": {"InstanceCount": 1, "InstanceType": "ml.m5.xlarge", "VolumeSizeInGB": 30},
        "OutputDataConfig": {"S3OutputPath": "s3://out/"},
        "HyperParameters": {"epochs": "3", "lr": "0.05"},
    }
    assert tuner.best_training_job() == "tune-job-007-abc"
    best = tuner.best_estimator()
    assert best.latest_training_job.name == "tune-job-007-abc"
    assert best.hyperparameters()["lr"] == "0.05"


def test_stop_tuning_job(estimator, sagemaker_client):
    tuner = HyperparameterTuner(estimator, "m", _ranges(), metric_definitions=METRICS)
    tuner.fit("s3://b/train", job_name="tune-job", wait=False)
    tuner.stop_tuning_job()
    sagemaker_client.stop_hyper_parameter_tuning_job.assert_called_once_with(HyperParameterTuningJobName="tune-job")
