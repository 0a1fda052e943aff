###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from .error_helper import ValidationError
from .logging import get_logger

logger = get_logger(service="sagekit_image_uris")

ECR_URI_TEMPLATE = "{account}.dkr.ecr.{region}.{domain}/{repository}:{tag}"

# Registry accounts hosting the built-in algorithm images
_BUILTIN_ACCOUNTS = {
    "ap-northeast-1": "351501993468",
    "ap-northeast-2": "835164637446",
    "ap-south-1": "991648021394",
    "ap-southeast-1": "475088953585",
    "ap-southeast-2": "712309505854",
    "ca-central-1": "469771592824",
    "cn-north-1": "390948362332",
    "cn-northwest-1": "387376663083",
    "eu-central-1": "664544806723",
    "eu-west-1": "438346466558",
    "eu-west-2": "644912444149",
    "us-east-1": "382416733822",
    "us-east-2": "404615174143",
    "us-west-1": "632365934929",
    "us-west-2": "174872318107",
}

_REGISTRY = {}


def register(framework, versions, registries, repository=None, scopes=("training", "inference")):
    """
    Add an image family to the registry.

    Args:
        framework (str): name used with ``retrieve``
        versions (dict): version -> image tag
        registries (dict): region -> ECR account id
        repository (str): ECR repository, defaults to the framework name
        scopes (tuple): image scopes the family serves
    """
    _REGISTRY[framework] = {
        "versions": dict(versions),
        "registries": dict(registries),
        "repository": repository or framework,
        "scopes": tuple(scopes),
    }


for _algorithm in (
    "kmeans",
    "pca",
    "linear-learner",
    "factorization-machines",
    "knn",
    "randomcutforest",
):
    register(_algorithm, {"1": "1"}, _BUILTIN_ACCOUNTS)


def _domain(region):
    return "amazonaws.com.cn" if region.startswith("cn-") else "amazonaws.com"


def retrieve(framework, region, version=None, image_scope=None):
    """
    Build the ECR image URI of a registered image family.

    Raises:
        ValidationError: unknown framework, region, version or scope
    """
    config = _REGISTRY.get(framework)
    if config is None:
        raise ValidationError(
            f"Unsupported framework: {framework}. Supported: {', '.join(sorted(_REGISTRY))}"
        )

    versions = config["versions"]
    if version is None:
        if len(versions) != 1:
            raise ValidationError(
                f"Unspecified version for {framework}. Supported: {', '.join(versions)}"
            )
        version = next(iter(versions))
    version = str(version)
    if version not in versions:
        raise ValidationError(
            f"Unsupported {framework} version: {version}. Supported: {', '.join(versions)}"
        )

    if image_scope is not None and image_scope not in config["scopes"]:
        raise ValidationError(
            f"Unsupported image scope: {image_scope}. Supported: {', '.join(config['scopes'])}"
        )

    account = config["registries"].get(region)
    if account is None:
        raise ValidationError(
            f"Unsupported region: {region}. "
            f"Supported: {', '.join(sorted(config['registries']))}"
        )

    uri = ECR_URI_TEMPLATE.format(
        account=account,
        region=region,
        domain=_domain(region),
        repository=config["repository"],
        tag=versions[version],
    )
    logger.debug(f"Resolved image {uri}")
    return uri
