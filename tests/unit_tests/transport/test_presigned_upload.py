import boto3

from preview_deploy.archiver import archive_directory
from preview_deploy.models import DirectTarget
from preview_deploy.transport import UploadTransport
from tests.consts import TEST_BUCKET_NAME
from tests.fixtures.build_trees import make_static_build


def test_presigned_put_returns_object_version(mocked_aws, tmp_path):
    s3_client = boto3.client("s3", region_name="us-east-1")
    s3_client.create_bucket(Bucket=TEST_BUCKET_NAME)
    s3_client.put_bucket_versioning(
        Bucket=TEST_BUCKET_NAME,
        VersioningConfiguration={"Status": "Enabled"},
    )
    url = s3_client.generate_presigned_url(
        "put_object",
        Params={"Bucket": TEST_BUCKET_NAME, "Key": "env/client.zip"},
        ExpiresIn=60,
    )
    archive = archive_directory(make_static_build(tmp_path / "build"))

    version_id = UploadTransport().upload(archive, DirectTarget(url))

    versions = s3_client.list_object_versions(Bucket=TEST_BUCKET_NAME, Prefix="env/client.zip")["Versions"]
    assert [v["VersionId"] for v in versions] == [version_id]
    stored = s3_client.get_object(Bucket=TEST_BUCKET_NAME, Key="env/client.zip", VersionId=version_id)
    assert stored["Body"].read() == archive
