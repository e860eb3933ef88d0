import click

from ..exception import SAMLIdPConfigurationError
from ..idp_config import IdPConfig
from ..relying_party import RelyingPartyConfigurationManager


def describe_relying_parties(idp_config):
    """
    Lists the profiles enabled for every configured relying party.

    :type idp_config: samlidp.idp_config.IdPConfig
    :rtype: list[str]
    """
    manager = RelyingPartyConfigurationManager.from_config(idp_config["RELYING_PARTIES"],
                                                           idp_config["ENTITY_ID"])
    lines = []
    parties = [("default", manager.default)] + sorted(manager.relying_parties.items())
    for relying_party_id, relying_party in parties:
        profiles = sorted(kind.value for kind in relying_party.profiles)
        lines.append("{rp} (as {provider}): {profiles}".format(
            rp=relying_party_id, provider=relying_party.provider_id,
            profiles=", ".join(profiles) or "no profiles"))
    return lines


@click.command()
@click.argument("idp_conf")
def check_config(idp_conf):
    """
    Loads IDP_CONF and prints the profiles enabled per relying party.
    """
    try:
        idp_config = IdPConfig(idp_conf)
        lines = describe_relying_parties(idp_config)
    except SAMLIdPConfigurationError as e:
        raise click.ClickException(str(e)) from e

    for line in lines:
        click.echo(line)
